"""Translate planner selector strings into Playwright selector-engine syntax.

The planner writes selectors the way a person reads them:

    getByRole('button', { name: 'Sign Up' })
    getByLabel('Email')
    getByText('Pricing')

parse_step_selector() turns those into a tagged selector kind and
normalize_step_selector() renders the Playwright form (role=button[name="Sign Up"],
label=Email, text=Pricing). Anything else is assumed to be a native selector
and passes through untouched.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


_Q = r"""(['"`])(?P<{name}>(?:\\.|(?!\1).)*)\1"""

_ROLE_RE = re.compile(
    r"^\s*(?:page\.)?getByRole\(\s*" + _Q.format(name="role")
    + r"\s*(?:,\s*\{\s*name\s*:\s*(['\"`])(?P<name>(?:\\.|(?!\3).)*)\3"
    + r"(?:\s*,\s*exact\s*:\s*(?:true|false))?\s*,?\s*\})?\s*\)\s*$"
)
_LABEL_RE = re.compile(r"^\s*(?:page\.)?getByLabel\(\s*" + _Q.format(name="value") + r"\s*\)\s*$")
_TEXT_RE = re.compile(r"^\s*(?:page\.)?getByText\(\s*" + _Q.format(name="value") + r"\s*\)\s*$")


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)


@dataclass(frozen=True)
class RoleSelector:
    role: str
    name: str | None = None

    def to_engine(self) -> str:
        if self.name is None:
            return f"role={self.role}"
        escaped = self.name.replace("\\", "\\\\").replace('"', '\\"')
        return f'role={self.role}[name="{escaped}"]'


@dataclass(frozen=True)
class LabelSelector:
    value: str

    def to_engine(self) -> str:
        return f"label={self.value}"


@dataclass(frozen=True)
class TextSelector:
    value: str

    def to_engine(self) -> str:
        return f"text={self.value}"


@dataclass(frozen=True)
class RawSelector:
    value: str

    def to_engine(self) -> str:
        return self.value


StepSelector = RoleSelector | LabelSelector | TextSelector | RawSelector


def parse_step_selector(raw: str) -> StepSelector:
    m = _ROLE_RE.match(raw)
    if m:
        name = m.group("name")
        return RoleSelector(role=_unescape(m.group("role")),
                            name=_unescape(name) if name is not None else None)
    m = _LABEL_RE.match(raw)
    if m:
        return LabelSelector(_unescape(m.group("value")))
    m = _TEXT_RE.match(raw)
    if m:
        return TextSelector(_unescape(m.group("value")))
    return RawSelector(raw)


def normalize_step_selector(raw: str) -> str:
    return parse_step_selector(raw).to_engine()


_SUBMIT_PARTS = ('[type="submit"]', "[type='submit']", "[type=submit]", "button:not([type])")


def is_submit_button_selector(selector: str) -> bool:
    """True for the composite "any submit control" selectors the planner emits for forms."""
    lowered = selector.lower()
    hits = sum(1 for part in _SUBMIT_PARTS if part in lowered)
    return hits >= 1 and "," in selector


# In-page helper: the element's ancestor chain, outermost first, stopping at
# the nearest ancestor with an id. Ids arrive already CSS-escaped.
ANCESTRY_JS = """const ancestry = (el) => {
    const chain = [];
    for (let node = el; node && node.nodeType === 1; node = node.parentElement) {
        const tag = node.tagName.toLowerCase();
        if (tag === 'html') break;
        const parent = node.parentElement;
        const same = parent ? [...parent.children].filter((c) => c.tagName === node.tagName) : [node];
        chain.unshift({ tag, id: node.id ? CSS.escape(node.id) : '', nth: same.indexOf(node) + 1, siblings: same.length });
        if (node.id) break;
    }
    return chain;
};
"""


def css_path(chain: list[dict]) -> str:
    """Build a child-combinator selector from an ancestry chain.

    :nth-of-type only counts siblings, so each level is qualified against its
    own parent and the path is anchored at an id or at <html>.
    """
    parts: list[str] = []
    anchored = False
    for node in chain:
        tag = node.get("tag") or "*"
        if node.get("id"):
            parts = [f"{tag}#{node['id']}"]
            anchored = True
        elif node.get("siblings", 1) > 1:
            parts.append(f"{tag}:nth-of-type({node.get('nth', 1)})")
        else:
            parts.append(tag)
    if not anchored:
        parts.insert(0, "html")
    return " > ".join(parts)
