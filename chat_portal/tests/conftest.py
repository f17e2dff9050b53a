"""
Pytest configuration for chat_portal. In-memory SQLite and deterministic settings so
tests never touch the filesystem or real IdP/chat/case endpoints.
"""
import os

os.environ["CHAT_DATABASE_URL"] = "sqlite:///:memory:"
os.environ["OKTA_ISSUER_URL"] = "https://idp.example/oauth2/default"
os.environ["OKTA_CLIENT_ID"] = "chat-portal-test"
os.environ["CHAT_API_URL"] = "https://chat.example"
os.environ["CASE_API_URL"] = "https://cases.example"
for _var in ("OKTA_PRIVATE_KEY", "OKTA_PRIVATE_KEY_PATH", "OKTA_PRIVATE_KEY_ID", "OKTA_CLIENT_SECRET", "CHAT_API_TOKEN"):
    os.environ.pop(_var, None)
