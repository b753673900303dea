from __future__ import annotations
from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import IntegerField, SelectField, StringField
from wtforms.validators import DataRequired, Email, Length, Optional
from .errors import FormError, ValidationError
from .models import Role

ROLE_CHOICES = [(role.value, role.value.title()) for role in Role]


def _upper(value):
    return value.strip().upper() if isinstance(value, str) else value


class JSONForm(FlaskForm):
    """Form fed from a JSON object body instead of ``request.form``."""

    class Meta:
        csrf = False

    @classmethod
    def from_json(cls, payload):
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        form = cls(formdata=MultiDict({k: v for k, v in payload.items() if v is not None}))
        if not form.validate():
            raise FormError(form.errors)
        return form


class InvitationForm(JSONForm):
    invitee_email = StringField(
        "inviteeEmail", name="inviteeEmail", validators=[DataRequired(), Email(), Length(max=255)]
    )
    role = SelectField("role", choices=ROLE_CHOICES, default=Role.MEMBER.value, filters=[_upper])
    organization_id = IntegerField("organizationId", name="organizationId", validators=[Optional()])
    workspace_id = IntegerField("workspaceId", name="workspaceId", validators=[Optional()])
    project_id = IntegerField("projectId", name="projectId", validators=[Optional()])


class MemberForm(JSONForm):
    user_id = IntegerField("userId", name="userId", validators=[DataRequired()])
    role = SelectField("role", choices=ROLE_CHOICES, default=Role.MEMBER.value, filters=[_upper])


class EmailMemberForm(JSONForm):
    email = StringField("email", validators=[DataRequired(), Email(), Length(max=255)])
    role = SelectField("role", choices=ROLE_CHOICES, default=Role.MEMBER.value, filters=[_upper])


class RoleForm(JSONForm):
    role = SelectField("role", choices=ROLE_CHOICES, validators=[DataRequired()], filters=[_upper])
