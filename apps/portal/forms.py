"""Input forms for the client portal API.

Field names follow the JSON contract used by the portal front end.
"""
from django import forms

from apps.portal.access import PIN_PATTERN

ERROR_MISSING = "required"
ERROR_PIN_FORMAT = "pin_format"


def _validate_pin(value):
    if not PIN_PATTERN.fullmatch(value):
        raise forms.ValidationError("PIN must be exactly 4 digits", code=ERROR_PIN_FORMAT)
    return value


class PortalTokenForm(forms.Form):
    """Consent request: just the portal token."""

    # No max_length: an over-long token must look like any other unknown token
    portalToken = forms.CharField(strip=False)


class PinForm(PortalTokenForm):
    """Set or verify a PIN."""

    pin = forms.CharField(max_length=16, strip=False)

    def clean_pin(self):
        return _validate_pin(self.cleaned_data["pin"])


class RemovePinForm(PortalTokenForm):
    """Remove a PIN. Requires the current one."""

    currentPin = forms.CharField(max_length=16, strip=False)

    def clean_currentPin(self):
        return _validate_pin(self.cleaned_data["currentPin"])


def has_missing_fields(form):
    """True when any field failed because it was absent or blank."""
    return any(
        error.code == ERROR_MISSING
        for errors in form.errors.as_data().values()
        for error in errors
    )
