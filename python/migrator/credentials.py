"""Registry credential <-> X-Registry-Auth token conversion."""

import base64
import binascii
import json

from migrator.error_utils import CredentialEncodingError
from migrator.models import RegistryCredential

# Credential attribute -> key in the token JSON. username/password/serveraddress
# are the names the Docker Engine reads from X-Registry-Auth.
_TOKEN_FIELDS = (
    ("username", "username"),
    ("password", "password"),
    ("server_address", "serveraddress"),
    ("base_address", "base_address"),
)


def encode_credential(cred: RegistryCredential) -> str:
    """Serialize a credential to canonical JSON and URL-safe base64 encode it.

    Empty fields are left out. Padding is kept.

    Raises:
        CredentialEncodingError: if a field cannot be serialized
    """
    payload = {}
    for attr, key in _TOKEN_FIELDS:
        value = getattr(cred, attr)
        if value:
            payload[key] = value

    try:
        data = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise CredentialEncodingError(f"can't encode credentials for '{cred.base_address}': {e}") from e

    return base64.urlsafe_b64encode(data).decode("ascii")


def decode_credential(token: str) -> RegistryCredential:
    """Inverse of encode_credential."""
    try:
        payload = json.loads(base64.urlsafe_b64decode(token.encode("ascii")))
    except (binascii.Error, ValueError) as e:
        raise CredentialEncodingError(f"can't decode auth token: {e}") from e

    if not isinstance(payload, dict):
        raise CredentialEncodingError("can't decode auth token: payload is not an object")

    return RegistryCredential(**{attr: payload.get(key, "") for attr, key in _TOKEN_FIELDS})
