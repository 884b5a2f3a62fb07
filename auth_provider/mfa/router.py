"""
Email verification endpoints.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError
from auth_provider.idp.origin import apply_cors, preflight_response
from auth_provider.mfa.mailer import EmailDeliveryError
from auth_provider.mfa.schemas import SendVerificationArgs, VerifyEmailArgs
from auth_provider.mfa.service import create_email_verification, verify_email_code
from auth_provider.ratelimit import enforce_rate_limit

router = APIRouter()


async def _error(request: Request, message: str, status_code: int = 400) -> JSONResponse:
    return await apply_cors(
        JSONResponse(content={"error": message}, status_code=status_code),
        request,
        match_origin=True,
    )


@router.post("/send-verification", dependencies=[Depends(enforce_rate_limit)])
async def send_verification(request: Request):
    """
    Email a fresh one-time code (and magic link) to the given address.
    """
    raw = await request.body()
    if not raw.strip():
        return await _error(request, "Request body is required")
    try:
        args = SendVerificationArgs.model_validate_json(raw)
    except ValidationError:
        return await _error(request, "Invalid email address")

    try:
        await create_email_verification(args.email, args.callbackUrl or "/")
    except Exception as exc:
        if not isinstance(exc, EmailDeliveryError):
            logger.exception(f"Unexpected error issuing verification code: {exc}")
        else:
            logger.error(f"Verification email delivery failed: {exc}")
        return await _error(
            request, "Failed to send verification email. Please try again.", status_code=500
        )
    return await apply_cors(JSONResponse(content={"success": True}), request, match_origin=True)


@router.post("/verify-email", dependencies=[Depends(enforce_rate_limit)])
async def verify_email(request: Request):
    """
    Check a code without consuming it, so the sign-in step can still redeem it.
    """
    raw = await request.body()
    if not raw.strip():
        return await _error(request, "Request body is required")
    try:
        args = VerifyEmailArgs.model_validate_json(raw)
    except ValidationError:
        return await _error(request, "Invalid request body")
    if not args.email or not args.code:
        return await _error(request, "Email and verification code are required")

    if not await verify_email_code(args.email, args.code, consume=False):
        return await _error(request, "Invalid verification code")
    return await apply_cors(
        JSONResponse(content={"success": True, "canSignIn": True}), request, match_origin=True
    )


@router.options("/send-verification")
@router.options("/verify-email")
async def email_preflight(request: Request):
    return await preflight_response(request)
