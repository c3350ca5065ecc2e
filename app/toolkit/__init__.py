"""
Toolkit - Cross-cutting utilities & services.

Key components:
    - services/email.py: EmailService class (template rendering + sending)
    - tasks.py: Celery task for asynchronous email delivery
    - helpers.py: PII masking for logs (mask_email, mask_phone)
    - validators.py: Kenyan mobile number normalisation (normalize_msisdn)

Note:
    This app has no models.
"""
