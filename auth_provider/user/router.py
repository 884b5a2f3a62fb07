"""
Sign-in, session and onboarding endpoints.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from auth_provider.config import settings
from auth_provider.mfa.schemas import VerifyEmailArgs
from auth_provider.ratelimit import enforce_rate_limit
from auth_provider.user.schemas import OnboardingArgs
from auth_provider.user.service import complete_onboarding, sign_in_with_email, sign_out
from auth_provider.user.session import SessionReader, get_session_reader

router = APIRouter()


@router.post("/login/email", dependencies=[Depends(enforce_rate_limit)])
async def login_with_email(request: Request):
    """
    Second step of email sign-in: redeem the code and set the session cookie.
    """
    raw = await request.body()
    if not raw.strip():
        return JSONResponse(content={"error": "Request body is required"}, status_code=400)
    try:
        args = VerifyEmailArgs.model_validate_json(raw)
    except ValidationError:
        return JSONResponse(content={"error": "Invalid request body"}, status_code=400)
    if not args.email or not args.code:
        return JSONResponse(
            content={"error": "Email and verification code are required"}, status_code=400
        )

    result = await sign_in_with_email(args.email, args.code)
    if result is None:
        return JSONResponse(content={"error": "Invalid verification code"}, status_code=400)

    response = JSONResponse(
        content={"success": True, "onboardingCompleted": result.onboarding_completed}
    )
    response.set_cookie(
        key=settings.session_cookie_name,
        value=result.session_token,
        max_age=settings.session_max_age_days * 24 * 60 * 60,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )
    return response


@router.post("/logout")
async def logout(request: Request):
    await sign_out(request.cookies.get(settings.session_cookie_name))
    response = JSONResponse(content={"success": True})
    response.delete_cookie(settings.session_cookie_name)
    return response


@router.get("/session")
async def current_session(
    request: Request,
    session_reader: SessionReader = Depends(get_session_reader),
):
    user = await session_reader.read(request)
    if user is None:
        return JSONResponse(content=None)
    return {
        "user": {
            "id": str(user.id),
            "email": user.email,
            "name": user.name,
            "onboardingCompleted": user.onboarding_completed,
        }
    }


@router.post("/onboarding")
async def onboarding(
    request: Request,
    session_reader: SessionReader = Depends(get_session_reader),
):
    user = await session_reader.read(request)
    if user is None:
        return JSONResponse(content={"error": "Unauthorized"}, status_code=401)
    try:
        args = OnboardingArgs.model_validate_json(await request.body())
    except ValidationError:
        return JSONResponse(content={"error": "Missing required fields"}, status_code=400)
    name, completed = await complete_onboarding(user.id, args)
    return {"success": True, "name": name, "onboardingCompleted": completed}
