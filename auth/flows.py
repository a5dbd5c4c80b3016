"""
auth/flows.py -- Credential flows: register, login, verify, resend, forgot, reset.

CredentialFlows composes the leaf components (passwords, OTP registry, reset
tokens, session tokens) with the user store and the mailer. It is the only
module that knows about more than one of them.

Result contract:
  Every public method returns a FlowResult. Expected failures (bad input,
  duplicate account, wrong password, expired code) come back as
  FlowResult.failure(ErrorKind, message); nothing is raised for them. The API
  layer maps ErrorKind to an HTTP status. Genuine faults (DB down, corrupt
  password hash) still raise and end up in the generic 500 handler.

Delivery:
  Email is sent after the state change is committed and is best effort.
  DeliveryError is logged at WARNING and swallowed -- registration, OTP
  issuance and reset-token issuance all stand even if the mail never leaves.

Per-user state machine:
  unregistered -> registered (is_verified=False) -> verified
  plus two independent substates: otp-pending (an OTPRegistry entry keyed by
  email) and password-reset-pending (reset fields on the user row).

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.errors import DeliveryError, ErrorKind
from auth.mailer import Mailer, otp_email, reset_email, welcome_email
from auth.models import FlowResult, User, UserSummary
from auth.otp import OTPRegistry, generate_otp
from auth.passwords import DUMMY_HASH, hash_password, verify_password
from auth.reset_tokens import ResetTokenService
from auth.store import UserStore
from auth.tokens import create_access_token
from core.config import Settings
from core.validation import (
    NAME_MAX_LENGTH,
    is_valid_email,
    is_valid_otp,
    is_valid_phone,
    normalize_email,
    password_problem,
    registration_problem,
)

logger = logging.getLogger("grievance.flows")

_DUPLICATE_ACCOUNT = "User with this email or phone already exists"
_BAD_CREDENTIALS = "Invalid credentials"
_BAD_RESET_TOKEN = "Invalid or expired reset token"
_DEACTIVATED = "Your account has been deactivated"
_UNIFORM_FORGOT = "If an account exists for this email, a password reset link has been sent"


def summarize(user: User) -> UserSummary:
    """Project a User onto its outward-facing fields (no password or reset data)."""
    return UserSummary(
        id=user.id,
        name=user.name,
        email=user.email,
        phone=user.phone,
        role=user.role,
        is_verified=user.is_verified,
        is_active=user.is_active,
        address=user.address,
        location=user.location,
    )


class CredentialFlows:
    """Orchestrates every credential flow for one process.

    Usage:
        flows = CredentialFlows(store, OTPRegistry(), ResetTokenService(store), mailer, get_settings())
        result = flows.login("a@x.com", "secret1")
        if result.ok:
            token = result.token
    """

    def __init__(
        self,
        store: UserStore,
        otp_registry: OTPRegistry,
        reset_tokens: ResetTokenService,
        mailer: Mailer,
        settings: Settings,
    ) -> None:
        self.store = store
        self.otp_registry = otp_registry
        self.reset_tokens = reset_tokens
        self.mailer = mailer
        self.settings = settings

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    def register(
        self,
        name: str,
        email: str,
        phone: str,
        password: str,
        address: str | None = None,
        location: str | None = None,
    ) -> FlowResult:
        """Create an unverified account, send a verification code, and sign the user in."""
        email = normalize_email(email or "")
        phone = (phone or "").strip()
        problem = registration_problem(name, email, phone, password)
        if problem:
            return FlowResult.failure(ErrorKind.VALIDATION, problem)

        if self.store.get_by_email_or_phone(email, phone) is not None:
            return FlowResult.failure(ErrorKind.CONFLICT, _DUPLICATE_ACCOUNT)

        user = User(
            name=name.strip(),
            email=email,
            phone=phone,
            hashed_password=hash_password(password),
            address=address,
            location=location,
        )
        try:
            user.id = self.store.create_user(user)
        except IntegrityError:
            # A concurrent registration claimed the email or phone after the pre-check.
            return FlowResult.failure(ErrorKind.CONFLICT, _DUPLICATE_ACCOUNT)
        logger.info("Registered user_id=%s", user.id)

        code = generate_otp()
        self.otp_registry.issue(email, code)
        subject, body = welcome_email(user.name, code, self._otp_minutes)
        self._deliver(email, subject, body, "verification")

        token = create_access_token(user.id, user.role)
        return FlowResult.success("Registration successful. Please verify your email.", token, summarize(user))

    def login(self, email_or_phone: str, password: str) -> FlowResult:
        """Authenticate by email or phone plus password.

        Unknown identifiers still pay for one bcrypt check (against
        DUMMY_HASH) so response time does not reveal which accounts exist.
        Wrong password and unknown identifier share one message; a correct
        password on a deactivated account gets a distinct one. No lockout.
        """
        identifier = (email_or_phone or "").strip()
        if not identifier or not password:
            return FlowResult.failure(ErrorKind.VALIDATION, "Please provide email/phone and password")
        if "@" in identifier:
            identifier = normalize_email(identifier)

        user = self.store.get_by_login(identifier)
        if user is None:
            verify_password(password, DUMMY_HASH)
            return FlowResult.failure(ErrorKind.AUTHENTICATION, _BAD_CREDENTIALS)
        if not verify_password(password, user.hashed_password):
            logger.info("Failed login for user_id=%s", user.id)
            return FlowResult.failure(ErrorKind.AUTHENTICATION, _BAD_CREDENTIALS)
        if not user.is_active:
            return FlowResult.failure(ErrorKind.AUTHORIZATION, _DEACTIVATED)

        token = create_access_token(user.id, user.role)
        return FlowResult.success("Login successful", token, summarize(user))

    # ------------------------------------------------------------------
    # Email verification
    # ------------------------------------------------------------------

    def verify_email(self, user_id: int, otp: str) -> FlowResult:
        """Consume the caller's outstanding code and mark the account verified.

        Any failure (no code, expired, wrong) leaves the account unchanged. A
        wrong code keeps the pending entry so the user can retry.
        """
        code = (otp or "").strip()
        if not is_valid_otp(code):
            return FlowResult.failure(ErrorKind.VALIDATION, "Valid 6-digit OTP is required")
        user = self.store.get_by_id(user_id)
        if user is None:
            return FlowResult.failure(ErrorKind.NOT_FOUND, "User not found")

        check = self.otp_registry.verify(user.email, code)
        if not check.valid:
            return FlowResult.failure(ErrorKind.NOT_FOUND_OR_EXPIRED, check.reason)

        self.store.update_user(user.id, is_verified=True)
        user.is_verified = True
        logger.info("Verified email for user_id=%s", user.id)
        return FlowResult.success("Email verified successfully", user=summarize(user))

    def resend_otp(self, user_id: int) -> FlowResult:
        """Issue a fresh code (invalidating the previous one) and email it."""
        user = self.store.get_by_id(user_id)
        if user is None:
            return FlowResult.failure(ErrorKind.NOT_FOUND, "User not found")
        if user.is_verified:
            return FlowResult.failure(ErrorKind.VALIDATION, "Email is already verified")

        code = generate_otp()
        self.otp_registry.issue(user.email, code)
        subject, body = otp_email(user.name, code, self._otp_minutes)
        self._deliver(user.email, subject, body, "verification resend")
        return FlowResult.success("OTP sent successfully")

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def forgot_password(self, email: str) -> FlowResult:
        """Issue a reset token for the account and email the reset link.

        By default an unknown email is reported as NOT_FOUND, which tells the
        caller whether the account exists. With
        Settings.uniform_forgot_password_response the reply is identical for
        known and unknown addresses.
        """
        email = normalize_email(email or "")
        if not is_valid_email(email):
            return FlowResult.failure(ErrorKind.VALIDATION, "Valid email is required")

        uniform = self.settings.uniform_forgot_password_response
        user = self.store.get_by_email(email)
        if user is None:
            if uniform:
                return FlowResult.success(_UNIFORM_FORGOT)
            return FlowResult.failure(ErrorKind.NOT_FOUND, "No user found with this email")

        token = self.reset_tokens.issue(user)
        reset_url = f"{self.settings.client_url.rstrip('/')}/reset-password/{token}"
        subject, body = reset_email(user.name, reset_url, self.reset_tokens.ttl_seconds // 60)
        self._deliver(user.email, subject, body, "password reset")
        return FlowResult.success(_UNIFORM_FORGOT if uniform else "Password reset link sent to your email")

    def reset_password(self, token: str, new_password: str) -> FlowResult:
        """Spend a reset token on a new password and sign the user in.

        The new password is validated and hashed before the token is claimed,
        and the store writes it in the same UPDATE that spends the token. A
        deactivated account gets its password changed but no session.
        """
        problem = password_problem(new_password)
        if problem:
            return FlowResult.failure(ErrorKind.VALIDATION, problem)

        user = self.reset_tokens.consume(token, hash_password(new_password))
        if user is None:
            return FlowResult.failure(ErrorKind.NOT_FOUND_OR_EXPIRED, _BAD_RESET_TOKEN)
        logger.info("Password reset for user_id=%s", user.id)

        if not user.is_active:
            return FlowResult.failure(ErrorKind.AUTHORIZATION, _DEACTIVATED)
        session = create_access_token(user.id, user.role)
        return FlowResult.success("Password reset successful", session, summarize(user))

    def update_password(self, user_id: int, current_password: str, new_password: str) -> FlowResult:
        """Change the password of a signed-in user who knows the current one."""
        if not current_password:
            return FlowResult.failure(ErrorKind.VALIDATION, "Current password is required")
        problem = password_problem(new_password, label="New password")
        if problem:
            return FlowResult.failure(ErrorKind.VALIDATION, problem)

        user = self.store.get_by_id(user_id)
        if user is None:
            return FlowResult.failure(ErrorKind.NOT_FOUND, "User not found")
        if not verify_password(current_password, user.hashed_password):
            return FlowResult.failure(ErrorKind.AUTHENTICATION, "Current password is incorrect")

        self.store.update_user(user.id, hashed_password=hash_password(new_password))
        logger.info("Password changed for user_id=%s", user.id)
        token = create_access_token(user.id, user.role)
        return FlowResult.success("Password updated successfully", token, summarize(user))

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def get_profile(self, user_id: int) -> FlowResult:
        user = self.store.get_by_id(user_id)
        if user is None:
            return FlowResult.failure(ErrorKind.NOT_FOUND, "User not found")
        return FlowResult.success("Profile loaded", user=summarize(user))

    def update_profile(
        self,
        user_id: int,
        name: str | None = None,
        phone: str | None = None,
        address: str | None = None,
        location: str | None = None,
    ) -> FlowResult:
        """Update the non-credential profile fields that were provided.

        Email is not editable here: it keys the OTP registry and is the
        reset-link destination.
        """
        updates: dict = {}
        if name:
            if len(name.strip()) == 0 or len(name) > NAME_MAX_LENGTH:
                return FlowResult.failure(ErrorKind.VALIDATION, f"Name must be 1-{NAME_MAX_LENGTH} characters")
            updates["name"] = name.strip()
        if phone:
            phone = phone.strip()
            if not is_valid_phone(phone):
                return FlowResult.failure(ErrorKind.VALIDATION, "Valid 10-digit phone number is required")
            updates["phone"] = phone
        if address:
            updates["address"] = address
        if location:
            updates["location"] = location

        user = self.store.get_by_id(user_id)
        if user is None:
            return FlowResult.failure(ErrorKind.NOT_FOUND, "User not found")
        if "phone" in updates and updates["phone"] != user.phone:
            holder = self.store.get_by_login(updates["phone"])
            if holder is not None and holder.id != user.id:
                return FlowResult.failure(ErrorKind.CONFLICT, "Phone number is already in use")

        if updates:
            try:
                self.store.update_user(user.id, **updates)
            except IntegrityError:
                return FlowResult.failure(ErrorKind.CONFLICT, "Phone number is already in use")
            for field, value in updates.items():
                setattr(user, field, value)
        return FlowResult.success("Profile updated successfully", user=summarize(user))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def _otp_minutes(self) -> int:
        return self.otp_registry.ttl_seconds // 60

    def _deliver(self, to: str, subject: str, body: str, purpose: str) -> None:
        """Send best effort; a DeliveryError is logged, never propagated."""
        try:
            self.mailer.send(to, subject, body)
        except DeliveryError as exc:
            logger.warning("Email delivery failed (%s) to %s: %s", purpose, to, exc)
