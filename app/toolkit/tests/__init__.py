"""
Tests for toolkit app.

- test_helpers.py: PII masking
- test_validators.py: MSISDN normalisation
- test_email.py: EmailService and the email delivery task
"""
