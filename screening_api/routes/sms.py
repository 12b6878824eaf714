from fastapi import APIRouter, Depends, HTTPException, status

from screening_api.services.sms_service import SMSService, get_sms_service
from screening_api.services.validation import SmsRequest, SmsTestRequest
from screening_api.utils.auth import require_admin

router = APIRouter(prefix="/api/sms", tags=["SMS"], dependencies=[Depends(require_admin)])

SMS_DISABLED = "SMS service is not enabled. Set SNS_ENABLED=true to send messages."


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


@router.post("/send")
def send_sms(request: SmsRequest, sms: SMSService = Depends(get_sms_service)):
    """Send a welcome, follow-up or custom text"""
    if not sms.is_enabled():
        raise _bad_request(SMS_DISABLED)

    if request.message_type == "welcome":
        if not request.first_name:
            raise _bad_request("First name is required for welcome messages")
        result = sms.send_welcome_sms(request.phone_number, request.first_name)
    elif request.message_type == "followup":
        if not request.first_name:
            raise _bad_request("First name is required for follow-up messages")
        result = sms.send_follow_up_sms(request.phone_number, request.first_name)
    else:
        if not request.message:
            raise _bad_request("Message content is required for custom messages")
        result = sms.send_sms(request.phone_number, request.message)

    if not result.success:
        raise _bad_request(result.error or "Failed to send SMS")

    return {
        "success": True,
        "data": {"messageId": result.message_id, "status": "sent"},
        "message": "SMS sent successfully",
    }


@router.post("/test")
def send_test_sms(request: SmsTestRequest, sms: SMSService = Depends(get_sms_service)):
    """Send the fixed test message to verify SNS configuration"""
    if not sms.is_enabled():
        raise _bad_request(SMS_DISABLED)

    result = sms.send_test_sms(request.phone_number)
    if not result.success:
        raise _bad_request(result.error or "Failed to send SMS")

    return {
        "success": True,
        "data": {"configValid": True, "messageId": result.message_id, "status": "sent"},
        "message": "Test SMS sent successfully via AWS SNS",
    }
