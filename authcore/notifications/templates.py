"""
HTML bodies for identity-proof emails.
"""

from html import escape
from urllib.parse import urlencode


def build_link(base_url: str, path: str, token: str) -> str:
    return f"{base_url.rstrip('/')}{path}?{urlencode({'token': token})}"


def render_verification_email(name: str, verify_url: str, expires_minutes: int) -> str:
    return f"""
  <h2>Verify Your Email</h2>
  <p>Hello {escape(name)},</p>
  <p>Thanks for signing up. Please confirm your email address by clicking the link below:</p>
  <a href="{escape(verify_url)}" target="_blank">Verify Email</a>
  <p>This link will expire in {expires_minutes} minutes.</p>
  <p>If you didn't create an account, you can ignore this email.</p>
"""


def render_password_reset_email(name: str, reset_url: str, expires_minutes: int) -> str:
    return f"""
  <h2>Password Reset Request</h2>
  <p>Hello {escape(name)},</p>
  <p>You requested to reset your password. Please click the link below to proceed:</p>
  <a href="{escape(reset_url)}" target="_blank">Reset Your Password</a>
  <p>This link will expire in {expires_minutes} minutes.</p>
  <p>If you didn't request this, please ignore this email.</p>
"""
