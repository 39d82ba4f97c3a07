"""
Inbound webhooks from the voice and SMS providers
"""

from .calls import CallWebhook, CallWebhookHandler
from .sms import SmsWebhook, SmsWebhookHandler
