"""
SMS notifications via AWS SNS
Never raises: every send returns an SMSResult
"""
import logging
import re
from dataclasses import dataclass
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from screening_api.config import get_settings
from screening_api.services.aws import get_sns_client

logger = logging.getLogger(__name__)

TEST_MESSAGE = "Test message from your health screening system. Reply STOP to opt out."
WELCOME_TEMPLATE = (
    "Hi {first_name}! Thank you for completing your health screening. "
    "We'll be in touch with your results and next steps. Reply STOP to opt out."
)
FOLLOW_UP_TEMPLATE = (
    "Hi {first_name}! This is a friendly reminder about your health screening follow-up. "
    "Please contact us to schedule your next appointment. Reply STOP to opt out."
)


@dataclass
class SMSResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


def format_phone_number(phone_number: str) -> Optional[str]:
    """E.164; US numbers get +1, anything shorter than 10 digits is rejected"""
    digits = re.sub(r"\D", "", phone_number or "")
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    if len(digits) > 11:
        return f"+{digits}"
    return None


class SMSService:
    def __init__(self, sns_client, sender_id: str = "HealthCheck", enabled: bool = False):
        self.sns = sns_client
        self.sender_id = sender_id
        self.enabled = enabled

    def is_enabled(self) -> bool:
        return self.enabled

    def send_sms(self, phone_number: str, message: str, sender_id: Optional[str] = None) -> SMSResult:
        if not self.enabled:
            logger.info("SMS service is disabled")
            return SMSResult(success=False, error="SMS service is disabled")

        formatted = format_phone_number(phone_number)
        if not formatted:
            return SMSResult(success=False, error="Invalid phone number format")

        try:
            result = self.sns.publish(
                PhoneNumber=formatted,
                Message=message,
                MessageAttributes={
                    "AWS.SNS.SMS.SenderID": {"DataType": "String", "StringValue": sender_id or self.sender_id},
                    "AWS.SNS.SMS.SMSType": {"DataType": "String", "StringValue": "Transactional"},
                },
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("SMS sending failed: %s", e)
            return SMSResult(success=False, error=str(e))

        logger.info("SMS sent: %s", result.get("MessageId"))
        return SMSResult(success=True, message_id=result.get("MessageId"))

    def send_test_sms(self, phone_number: str) -> SMSResult:
        return self.send_sms(phone_number, TEST_MESSAGE)

    def send_welcome_sms(self, phone_number: str, first_name: str) -> SMSResult:
        return self.send_sms(phone_number, WELCOME_TEMPLATE.format(first_name=first_name))

    def send_follow_up_sms(self, phone_number: str, first_name: str) -> SMSResult:
        return self.send_sms(phone_number, FOLLOW_UP_TEMPLATE.format(first_name=first_name))


def get_sms_service() -> SMSService:
    """Dependency to get the SMS service"""
    settings = get_settings()
    return SMSService(get_sns_client(), sender_id=settings.SNS_SENDER_ID, enabled=settings.SNS_ENABLED)
