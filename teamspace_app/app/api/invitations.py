from __future__ import annotations
from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from ..forms import InvitationForm
from ..invitations import service
from ..invitations.targets import Target
from . import serializers

invitations_bp = Blueprint("invitations", __name__)


def _delivery_fields(report) -> dict:
    return {"emailSent": report.sent, "emailError": report.error}


@invitations_bp.route("/invitations", methods=["POST"])
@login_required
def create_invitation():
    form = InvitationForm.from_json(request.get_json(silent=True))
    target = Target.from_ids(form.organization_id.data, form.workspace_id.data, form.project_id.data)
    result = service.create_invitation(form.invitee_email.data, target, form.role.data, current_user.id)

    if result.kind == "direct_add":
        body = {
            "type": result.kind,
            "message": result.message,
            "member": serializers.member(result.member),
            "entity": serializers.entity_summary(result.resolved.entity, result.resolved.target.type.value),
            "user": serializers.user_summary(result.user),
            "addedToWorkspace": result.added_to_workspace,
        }
    else:
        body = {
            "type": result.kind,
            "message": "Invitation created",
            "invitation": serializers.invitation(result.invitation, include_token=True),
        }
    body.update(_delivery_fields(result.delivery))
    return jsonify(body), 201


@invitations_bp.route("/invitations/<token>/accept", methods=["PATCH"])
@login_required
def accept_invitation(token: str):
    result = service.accept_invitation(token, current_user.id)
    return jsonify({
        "message": result.message,
        "invitation": {
            "id": result.invitation.id,
            "entityType": result.resolved.target.type.value,
            "entityName": result.resolved.name,
        },
    })


@invitations_bp.route("/invitations/<token>/decline", methods=["PATCH"])
@login_required
def decline_invitation(token: str):
    service.decline_invitation(token, current_user.id)
    return jsonify({"message": "Invitation declined successfully"})


@invitations_bp.route("/invitations/verify/<token>", methods=["GET"])
def verify_invitation(token: str):
    result = service.verify_invitation(token)
    return jsonify({
        "invitation": serializers.invitation(result.invitation),
        "isValid": result.is_valid,
        "isExpired": result.is_expired,
        "canRespond": result.can_respond,
        "inviteeExists": result.invitee_exists,
        "entityType": result.resolved.target.type.value,
        "entityName": result.resolved.name,
    })


@invitations_bp.route("/invitations/user", methods=["GET"])
@login_required
def user_invitations():
    rows = service.get_user_invitations(current_user.email)
    return jsonify([serializers.invitation(row) for row in rows])


@invitations_bp.route("/invitations/entity/<entity_type>/<entity_id>", methods=["GET"])
@login_required
def entity_invitations(entity_type: str, entity_id: str):
    rows = service.get_entity_invitations(Target.parse(entity_type, entity_id), current_user.id)
    return jsonify([serializers.invitation(row) for row in rows])


@invitations_bp.route("/invitations/<int:invitation_id>/resend", methods=["POST"])
@login_required
def resend_invitation(invitation_id: int):
    result = service.resend_invitation(invitation_id, current_user.id)
    body = {
        "message": result.message,
        "invitation": serializers.invitation(result.invitation, include_token=True),
    }
    body.update(_delivery_fields(result.delivery))
    return jsonify(body)


@invitations_bp.route("/invitations/<int:invitation_id>", methods=["DELETE"])
@login_required
def delete_invitation(invitation_id: int):
    service.delete_invitation(invitation_id, current_user.id)
    return jsonify({"message": "Invitation deleted successfully"})
