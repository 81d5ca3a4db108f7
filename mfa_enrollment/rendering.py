"""Minimal HTML pages for the enrollment form and error screen."""

from __future__ import annotations

from html import escape
from typing import Dict, List

from pydantic import BaseModel, Field

from .config import EnrollmentSettings
from .models import EnrollmentForm

STYLE = (
    "body{font-family:Arial, sans-serif;background:#f7f7f9;padding:32px;}h1{margin-top:0;}"
    "fieldset{border:1px solid #d6d7dc;padding:16px;background:#fff;}"
    "label{display:flex;align-items:center;gap:8px;margin:8px 0;}small{color:#555;}"
    ".configured{color:green;font-weight:bold;} .error{color:#b30000;margin-bottom:12px;}"
    ".help{margin-bottom:12px;color:#333;} .cta{margin-top:16px;}"
)


class RenderedPage(BaseModel):
    status: int = 200
    headers: Dict[str, str] = Field(default_factory=dict)
    body: str


class HtmlRenderer:
    """Default renderer producing self-contained HTML pages."""

    def __init__(self, settings: EnrollmentSettings | None = None) -> None:
        self.settings = settings or EnrollmentSettings()

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "text/html; charset=utf-8",
            "X-Frame-Options": self.settings.frame_options,
        }

    def render_form(self, form: EnrollmentForm) -> RenderedPage:
        if form.sufficient:
            title = "Configure additional sign-in methods"
            description = "You can add more MFA methods now for better recovery and flexibility."
        else:
            title = "Set up more sign-in protection"
            description = "Your account needs additional multi-factor methods before continuing."

        body: List[str] = [
            "<!DOCTYPE html>",
            '<html lang="en"><head><meta charset="UTF-8"><title>MFA Enrollment</title>',
            f"<style>{STYLE}</style>",
            "</head><body>",
            f"<h1>{escape(title)}</h1>",
            f'<div class="help">{escape(description)}</div>',
        ]
        if form.error_message:
            body.append(f'<div class="error">{escape(form.error_message)}</div>')
        body.append('<form method="post">')
        body.append("<fieldset><legend>Available methods</legend>")
        for field in form.fields:
            disabled = "" if field.selectable else " disabled"
            if field.configured:
                status = '<span class="configured">Configured</span>'
            elif not field.available:
                status = '<span class="configured">Unavailable</span>'
            else:
                status = ""
            body.append(
                f'<label><input type="checkbox" name="method" value="{escape(field.id)}"{disabled} />'
            )
            body.append(f"<div><div><strong>{escape(field.label)}</strong> {status}</div>")
            body.append(f"<small>{escape(field.description)}</small></div></label>")
        if not form.has_selectable:
            body.append('<div class="help">No additional methods available.</div>')
        body.append("</fieldset>")
        if form.allow_opt_out:
            body.append(
                '<label style="margin-top:12px;"><input type="checkbox" name="optOut"/> '
                "Don't ask me again</label>"
            )
        body.append('<div class="cta"><button type="submit">Continue</button></div>')
        body.append("</form>")
        body.append("</body></html>")
        return RenderedPage(status=200, headers=self._headers(), body="\n".join(body))

    def render_error(self, message: str) -> RenderedPage:
        body = (
            '<!DOCTYPE html><html><head><meta charset="UTF-8"><title>MFA Enrollment</title></head><body>'
            "<h1>MFA Enrollment</h1>"
            f"<p>{escape(message)}</p>"
            "</body></html>"
        )
        return RenderedPage(status=400, headers=self._headers(), body=body)
