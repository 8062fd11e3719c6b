"""Bearer identity authentication for the API.

Session issuance lives outside the gateway. The identity provider hands the
storefront a token signed with the gateway's ``SECRET_KEY``; the API only
verifies it and exposes the caller's user id as ``request.user.pk``.
"""

from django.conf import settings
from django.core import signing
from rest_framework import authentication, exceptions

TOKEN_SALT = "checkout.identity"


class Identity:
    """Authenticated caller. Carries only the verified user id."""

    is_authenticated = True
    is_anonymous = False

    def __init__(self, uid: str):
        self.pk = uid
        self.id = uid

    def __str__(self):
        return self.pk


def issue_identity_token(uid: str) -> str:
    """Sign a token for ``uid``. Used by the identity provider and tests."""
    return signing.dumps({"uid": uid}, salt=TOKEN_SALT)


class BearerIdentityAuthentication(authentication.BaseAuthentication):
    """Read ``Authorization: Bearer <token>`` and verify its signature.

    Requests without the header stay anonymous; views that need a caller
    enforce it with ``IsAuthenticated``. A malformed, tampered or expired
    token fails with 401.
    """

    keyword = "Bearer"

    def authenticate(self, request):
        parts = authentication.get_authorization_header(request).split()
        if not parts or parts[0].lower() != self.keyword.lower().encode():
            return None
        if len(parts) != 2:
            raise exceptions.AuthenticationFailed("Invalid bearer header.")

        try:
            data = signing.loads(
                parts[1].decode(),
                salt=TOKEN_SALT,
                max_age=settings.IDENTITY_TOKEN_MAX_AGE,
            )
        except (signing.BadSignature, UnicodeError):
            raise exceptions.AuthenticationFailed("Invalid or expired token.")

        uid = data.get("uid") if isinstance(data, dict) else None
        if not uid:
            raise exceptions.AuthenticationFailed("Invalid or expired token.")
        return Identity(str(uid)), None

    def authenticate_header(self, request):
        return f'{self.keyword} realm="api"'
