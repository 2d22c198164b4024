# =============================================================================
# core/messages.py - HTML notification templates
# =============================================================================

from jinja2 import Environment, DictLoader, StrictUndefined, select_autoescape

from core.models import NotificationMessage, NotificationStage

BASE_TEMPLATE = """<html>
<body style="font-family: Segoe UI, Arial, sans-serif; font-size: 14px; color: #222;">
<h2 style="color: {{ colour }};">{{ heading }}</h2>
<p>You are recorded as the owner of the privileged account <strong>{{ principal_name }}</strong>.</p>
<table style="border-collapse: collapse;">
<tr><td style="padding: 4px 12px 4px 0;">Last activity</td><td>{{ last_activity }}</td></tr>
<tr><td style="padding: 4px 12px 4px 0;">Days inactive</td><td>{{ inactive_days }}</td></tr>
</table>
{% block content %}{% endblock %}
<p style="color: #666; font-size: 12px;">This message was generated automatically by the privileged account review.</p>
</body>
</html>
"""

WARNING_TEMPLATE = """{% extends "base.html" %}
{% block content %}
<p>The account has not been used for {{ inactive_days }} days. If you still need it, sign in with it
before it reaches {{ disable_days }} days of inactivity, at which point it will be disabled.</p>
{% endblock %}
"""

DISABLED_TEMPLATE = """{% extends "base.html" %}
{% block content %}
<p>The account has been <strong>disabled</strong> after {{ inactive_days }} days without activity.
Contact the identity team if it is still required. Accounts inactive for {{ delete_days }} days are
removed.</p>
{% endblock %}
"""

DELETION_TEMPLATE = """{% extends "base.html" %}
{% block content %}
{% if deletion_enabled %}
<p>The account has been <strong>deleted</strong> after {{ inactive_days }} days without activity.
Request a new privileged account if access is still required.</p>
{% else %}
<p>The account has reached the deletion threshold of {{ delete_days }} days and has been
<strong>disabled</strong> pending removal. Contact the identity team if it is still required.</p>
{% endif %}
{% endblock %}
"""

STAGE_TEMPLATES = {
    NotificationStage.WARNING: ('warning.html', '#b26a00', 'Inactive privileged account'),
    NotificationStage.DISABLED: ('disabled.html', '#b00020', 'Privileged account disabled'),
    NotificationStage.DELETION: ('deletion.html', '#7a0014', 'Privileged account removal'),
}

SUBJECTS = {
    NotificationStage.WARNING: "Action required: privileged account {principal_name} inactive for {inactive_days} days",
    NotificationStage.DISABLED: "Privileged account {principal_name} has been disabled",
    NotificationStage.DELETION: "Privileged account {principal_name} reached the deletion threshold",
}


class MessageBuilder:
    """Renders the subject and HTML body for each notification stage"""

    def __init__(self, disable_days: int = 120, delete_days: int = 180, deletion_enabled: bool = False):
        self.disable_days = disable_days
        self.delete_days = delete_days
        self.deletion_enabled = deletion_enabled
        self.environment = Environment(
            loader=DictLoader({
                'base.html': BASE_TEMPLATE,
                'warning.html': WARNING_TEMPLATE,
                'disabled.html': DISABLED_TEMPLATE,
                'deletion.html': DELETION_TEMPLATE,
            }),
            autoescape=select_autoescape(['html']),
            undefined=StrictUndefined,
        )

    def build(self, stage: NotificationStage, principal_name: str, last_activity_display: str,
              inactive_days: int) -> NotificationMessage:
        template_name, colour, heading = STAGE_TEMPLATES[stage]
        body = self.environment.get_template(template_name).render(
            colour=colour,
            heading=heading,
            principal_name=principal_name,
            last_activity=last_activity_display,
            inactive_days=inactive_days,
            disable_days=self.disable_days,
            delete_days=self.delete_days,
            deletion_enabled=self.deletion_enabled,
        )
        subject = SUBJECTS[stage].format(principal_name=principal_name, inactive_days=inactive_days)
        return NotificationMessage(subject=subject, body=body)
