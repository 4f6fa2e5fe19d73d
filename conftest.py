"""
Test bootstrap. Settings are read at import time, so the environment is
prepared here before any application module is imported.
"""
import os

os.environ["TESTING"] = "True"
os.environ["DEBUG"] = "False"
os.environ["LOG_JSON"] = "False"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["PAYSTACK_SECRET_KEY"] = "sk_test_webhook_secret"
os.environ["SMTP_PASSWORD"] = ""
