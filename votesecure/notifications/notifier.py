# votesecure/notifications/notifier.py

import logging
from smtplib import SMTPException
from flask_mail import Message
from markupsafe import escape
from votesecure import mail

logger = logging.getLogger(__name__)


class Notifier:
    def send_otp(self, email, otp, purpose='login') -> bool:
        raise NotImplementedError

    def send_voter_credentials(self, email, name, temp_password, login_url) -> bool:
        raise NotImplementedError


class MailNotifier(Notifier):
    """E-mail delivery through Flask-Mail. Returns False instead of raising."""

    def __init__(self, otp_valid_minutes=10):
        self.otp_valid_minutes = otp_valid_minutes

    def _send(self, recipient, subject, body, html=None):
        msg = Message(subject, recipients=[recipient], body=body, html=html)
        try:
            mail.send(msg)
            return True
        except (SMTPException, OSError) as e:
            logger.error("Failed to send '%s' to %s: %s", subject, recipient, e)
            return False

    def send_otp(self, email, otp, purpose='login'):
        subject = 'Your VoteSecure verification code'
        body = (
            f"Your VoteSecure {purpose.replace('_', ' ')} code is {otp}.\n"
            f"It expires in {self.otp_valid_minutes} minutes. "
            "If you did not try to sign in, ignore this message."
        )
        return self._send(email, subject, body)

    def send_voter_credentials(self, email, name, temp_password, login_url):
        subject = 'Your VoteSecure Voter Account Credentials'
        body = (
            f"Hello {name},\n\n"
            "You have been registered as a voter on VoteSecure.\n\n"
            f"Login URL: {login_url}\n"
            f"Email: {email}\n"
            f"Temporary Password: {temp_password}\n\n"
            "Next steps:\n"
            "  1. Sign in with your email and temporary password\n"
            "  2. Complete the face verification when prompted\n"
            "  3. Change your password (mandatory)\n"
            "  4. Open the election page to cast your vote\n"
        )
        html = (
            f"<h2>Hello {escape(name)},</h2>"
            "<p>You have been registered as a voter on VoteSecure.</p>"
            f"<p><b>Login URL:</b> <a href='{escape(login_url)}'>{escape(login_url)}</a><br>"
            f"<b>Email:</b> {escape(email)}<br>"
            f"<b>Temporary Password:</b> <code>{escape(temp_password)}</code></p>"
            "<p><strong>Change your password immediately</strong> when asked.</p>"
        )
        return self._send(email, subject, body, html=html)
