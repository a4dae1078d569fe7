"""Form field discovery using stdlib html.parser."""

from dataclasses import dataclass, field
from html.parser import HTMLParser
from typing import List, Optional

_SKIP_TYPES = ("hidden", "submit", "button", "image", "reset", "file", "checkbox", "radio")


@dataclass
class FormData:
    """Represents an HTML <form> with the selectors of its fillable inputs."""
    action: str = ""
    method: str = "GET"
    fields: List[str] = field(default_factory=list)


def field_selector(attrs: dict) -> str:
    """`#id` when the element has one, else `[name="..."]`, else ''."""
    if attrs.get("id"):
        return f"#{attrs['id']}"
    if attrs.get("name"):
        return f'[name="{attrs["name"]}"]'
    return ""


class _FormExtractor(HTMLParser):
    """Extract <form> elements with their visible, enabled inputs."""

    def __init__(self):
        super().__init__()
        self.forms: List[FormData] = []
        self._current_form: Optional[FormData] = None

    def handle_starttag(self, tag, attrs):
        attr_dict = {k: (v or "") for k, v in attrs}

        if tag == "form":
            self._current_form = FormData(
                action=attr_dict.get("action", ""),
                method=attr_dict.get("method", "GET").upper(),
            )
            return

        if self._current_form is None or tag not in ("input", "textarea"):
            return
        if "disabled" in attr_dict:
            return
        if tag == "input" and attr_dict.get("type", "text").lower() in _SKIP_TYPES:
            return
        selector = field_selector(attr_dict)
        if selector and selector not in self._current_form.fields:
            self._current_form.fields.append(selector)

    def handle_endtag(self, tag):
        if tag == "form" and self._current_form is not None:
            self.forms.append(self._current_form)
            self._current_form = None


def extract_forms(html: str) -> List[FormData]:
    parser = _FormExtractor()
    parser.feed(html)
    parser.close()
    return parser.forms


def discover_fields(html: str) -> List[str]:
    """Unique fillable field selectors across every form, in page order."""
    seen: List[str] = []
    for form in extract_forms(html):
        for sel in form.fields:
            if sel not in seen:
                seen.append(sel)
    return seen
