from typing import Optional

from jinja2 import TemplateSyntaxError, meta
from jinja2.sandbox import SandboxedEnvironment

PLACEHOLDERS = frozenset({"name", "email"})

# Subjects are plain text; bodies are HTML so substituted values get escaped
subject_env = SandboxedEnvironment(autoescape=False)
body_env = SandboxedEnvironment(autoescape=True)


def uses_placeholders(text: str, env: SandboxedEnvironment) -> bool:
    """
    True when `text` is a valid template that references a recipient
    placeholder. Anything else (plain HTML, literal `{{ }}` or `{% %}`) is
    sent as written.
    """
    try:
        ast = env.parse(text)
    except TemplateSyntaxError:
        return False
    return bool(meta.find_undeclared_variables(ast) & PLACEHOLDERS)


class MessageTemplate:
    """Subject and body compiled once per email, rendered once per recipient."""

    def __init__(self, subject: str, body: str):
        self.subject_text = subject
        self.body_text = body
        self.subject = subject_env.from_string(subject) if uses_placeholders(subject, subject_env) else None
        self.body = body_env.from_string(body) if uses_placeholders(body, body_env) else None

    def render(self, email: str, name: Optional[str] = None) -> tuple[str, str]:
        variables = {"email": email, "name": name or ""}
        subject = self.subject.render(**variables) if self.subject else self.subject_text
        body = self.body.render(**variables) if self.body else self.body_text
        return subject, body
