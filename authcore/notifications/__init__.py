"""
Email notifications for verification and password reset.
"""

from authcore.notifications.email import EmailMessage, Mailer, SMTPMailer, get_mailer

__all__ = ["EmailMessage", "Mailer", "SMTPMailer", "get_mailer"]
