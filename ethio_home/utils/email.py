import logging

import resend
from flask import current_app

logger = logging.getLogger(__name__)


def _wrap(title, body):
    return f"""
    <div style="font-family: Arial, sans-serif; padding: 20px; color: #333;">
        <div style="background-color: #1B5E20; color: white; padding: 20px; text-align: center; border-radius: 8px 8px 0 0;">
            <h2 style="margin: 0; font-size: 24px;">{title}</h2>
        </div>
        <div style="background-color: #f9f9f9; padding: 30px; border-radius: 0 0 8px 8px;">
            {body}
            <div style="text-align: center; margin-top: 30px; color: #666; font-size: 12px;">
                <p>&copy; Ethio Home. All rights reserved.</p>
            </div>
        </div>
    </div>
    """


def _button(link, label):
    return (f'<center><a href="{link}" style="display: inline-block; background-color: #1B5E20; '
            f'color: white; padding: 15px 30px; text-decoration: none; border-radius: 4px; '
            f'margin: 20px 0; font-weight: bold;">{label}</a></center>')


def _send(to_email, subject, html_content):
    """Send through Resend; returns False when not configured or on failure."""
    api_key = current_app.config.get('RESEND_API_KEY')
    if not api_key:
        logger.warning('RESEND_API_KEY is not set. Email "%s" to %s not sent.', subject, to_email)
        return False

    resend.api_key = api_key
    params = {
        "from": current_app.config['MAIL_FROM'],
        "to": [to_email],
        "subject": subject,
        "html": html_content
    }

    try:
        resend.Emails.send(params)
        return True
    except Exception as e:
        logger.error('Failed to send "%s" email to %s: %s', subject, to_email, e)
        return False


def send_verification_email(to_email, name, token):
    """Send an email verification link."""
    verify_link = f"{current_app.config['FRONTEND_URL']}/verify-email/{token}"
    body = f"""
        <p>Hi {name},</p>
        <p>Welcome to Ethio Home! Please verify your email address to complete your registration.</p>
        {_button(verify_link, 'Verify My Email')}
        <p>The link is valid for 24 hours. If you didn't create an account, you can safely ignore this email.</p>
    """
    return _send(to_email, 'Verify your email address - Ethio Home', _wrap('Welcome to Ethio Home!', body))


def send_password_reset_email(to_email, name, token):
    """Send a password reset link."""
    reset_link = f"{current_app.config['FRONTEND_URL']}/reset-password/{token}"
    body = f"""
        <p>Hi {name},</p>
        <p>We received a request to reset your password. Click the button below to choose a new password:</p>
        {_button(reset_link, 'Reset My Password')}
        <div style="background-color: #fff3cd; border: 1px solid #ffc107; padding: 10px; border-radius: 4px; margin: 15px 0;">
            <p><strong>This link will expire in 1 hour.</strong></p>
            <p>If you didn't request a password reset, you can safely ignore this email.</p>
        </div>
    """
    return _send(to_email, 'Reset your password - Ethio Home', _wrap('Password Reset Request', body))


def send_password_changed_email(to_email, name):
    body = f"""
        <p>Hi {name},</p>
        <p>Your Ethio Home password was just changed. If this wasn't you, reset your password immediately.</p>
    """
    return _send(to_email, 'Your password was changed - Ethio Home', _wrap('Password Changed', body))
