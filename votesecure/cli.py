# votesecure/cli.py

import click
from sqlalchemy.exc import IntegrityError
from votesecure import db
from votesecure.database.models import AccountStatus, Role, User, normalize_email
from votesecure.encryption.password_hashing import PasswordHashingService
from votesecure.security.input_validator import InputValidator


def register_commands(app):
    @app.cli.command('create-admin')
    @click.option('--email', prompt=True)
    @click.option('--name', prompt=True, default='Administrator')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
    def create_admin(email, name, password):
        """Provision an admin account (OTP is always required for admins)."""
        pwhash = PasswordHashingService()
        validator = InputValidator()
        email = normalize_email(email)
        if not validator.validate_email(email):
            raise click.BadParameter('invalid email address', param_hint='--email')
        if not pwhash.is_acceptable_password(password):
            raise click.BadParameter('password must be at least 8 characters', param_hint='--password')

        user = User(
            role=Role.ADMIN.value,
            name=validator.sanitize_string(name) or 'Administrator',
            email=email,
            password_hash=pwhash.hash_password(password),
            password_changed=True,
            account_status=AccountStatus.ACTIVE.value,
            otp_required=True,
            authorized=True,
        )
        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise click.ClickException(f'an account with email {email} already exists')
        click.echo(f'Admin {email} created with id {user.id}.')

    @app.cli.command('verify-audit-log')
    def verify_audit_log():
        """Check the hash chain and signatures of the security audit log."""
        audit_logger = app.extensions['votesecure'].audit_logger
        if not audit_logger.verify_log_integrity():
            raise click.ClickException(f'audit log {audit_logger.log_file} failed verification')
        click.echo(f'Audit log {audit_logger.log_file} verified.')
        click.echo('Signing public key:')
        click.echo(audit_logger.public_key_pem(), nl=False)
