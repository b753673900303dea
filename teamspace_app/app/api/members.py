from __future__ import annotations
from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from ..forms import EmailMemberForm, MemberForm, RoleForm
from ..membership import service
from . import serializers

members_bp = Blueprint("members", __name__)


def _listing(rows):
    return jsonify([serializers.member(row) for row in rows])


# organizations

@members_bp.route("/organizations/<int:organization_id>/members", methods=["GET"])
@login_required
def list_organization_members(organization_id: int):
    return _listing(service.list_organization_members(organization_id, current_user.id))


@members_bp.route("/organizations/<int:organization_id>/members", methods=["POST"])
@login_required
def add_organization_member(organization_id: int):
    form = MemberForm.from_json(request.get_json(silent=True))
    row = service.create_organization_member(form.user_id.data, organization_id, form.role.data, current_user.id)
    return jsonify(serializers.member(row)), 201


@members_bp.route("/organizations/<int:organization_id>/members/invite", methods=["POST"])
@login_required
def invite_organization_member(organization_id: int):
    form = EmailMemberForm.from_json(request.get_json(silent=True))
    row = service.invite_organization_member_by_email(form.email.data, organization_id, form.role.data, current_user.id)
    return jsonify(serializers.member(row)), 201


@members_bp.route("/organization-members/<int:member_id>", methods=["PATCH"])
@login_required
def update_organization_member(member_id: int):
    form = RoleForm.from_json(request.get_json(silent=True))
    return jsonify(serializers.member(service.update_organization_member(member_id, form.role.data, current_user.id)))


@members_bp.route("/organization-members/<int:member_id>", methods=["DELETE"])
@login_required
def remove_organization_member(member_id: int):
    service.remove_organization_member(member_id, current_user.id)
    return jsonify({"message": "Member removed from organization"})


# workspaces

@members_bp.route("/workspaces/<int:workspace_id>/members", methods=["GET"])
@login_required
def list_workspace_members(workspace_id: int):
    return _listing(service.list_workspace_members(workspace_id, current_user.id))


@members_bp.route("/workspaces/<int:workspace_id>/members", methods=["POST"])
@login_required
def add_workspace_member(workspace_id: int):
    form = MemberForm.from_json(request.get_json(silent=True))
    row = service.create_workspace_member(form.user_id.data, workspace_id, form.role.data, current_user.id)
    return jsonify(serializers.member(row)), 201


@members_bp.route("/workspaces/<int:workspace_id>/members/invite", methods=["POST"])
@login_required
def invite_workspace_member(workspace_id: int):
    form = EmailMemberForm.from_json(request.get_json(silent=True))
    row = service.invite_workspace_member_by_email(form.email.data, workspace_id, form.role.data, current_user.id)
    return jsonify(serializers.member(row)), 201


@members_bp.route("/workspace-members/<int:member_id>", methods=["PATCH"])
@login_required
def update_workspace_member(member_id: int):
    form = RoleForm.from_json(request.get_json(silent=True))
    return jsonify(serializers.member(service.update_workspace_member(member_id, form.role.data, current_user.id)))


@members_bp.route("/workspace-members/<int:member_id>", methods=["DELETE"])
@login_required
def remove_workspace_member(member_id: int):
    service.remove_workspace_member(member_id, current_user.id)
    return jsonify({"message": "Member removed from workspace"})


# projects

@members_bp.route("/projects/<int:project_id>/members", methods=["GET"])
@login_required
def list_project_members(project_id: int):
    return _listing(service.list_project_members(project_id, current_user.id))


@members_bp.route("/projects/<int:project_id>/members", methods=["POST"])
@login_required
def add_project_member(project_id: int):
    form = MemberForm.from_json(request.get_json(silent=True))
    row = service.create_project_member(form.user_id.data, project_id, form.role.data, current_user.id)
    return jsonify(serializers.member(row)), 201


@members_bp.route("/projects/<int:project_id>/members/invite", methods=["POST"])
@login_required
def invite_project_member(project_id: int):
    form = EmailMemberForm.from_json(request.get_json(silent=True))
    row = service.invite_project_member_by_email(form.email.data, project_id, form.role.data, current_user.id)
    return jsonify(serializers.member(row)), 201


@members_bp.route("/project-members/<int:member_id>", methods=["PATCH"])
@login_required
def update_project_member(member_id: int):
    form = RoleForm.from_json(request.get_json(silent=True))
    return jsonify(serializers.member(service.update_project_member(member_id, form.role.data, current_user.id)))


@members_bp.route("/project-members/<int:member_id>", methods=["DELETE"])
@login_required
def remove_project_member(member_id: int):
    service.remove_project_member(member_id, current_user.id)
    return jsonify({"message": "Member removed from project"})


# a user's own memberships

@members_bp.route("/users/<int:user_id>/organizations", methods=["GET"])
@login_required
def user_organizations(user_id: int):
    return _listing(service.get_user_organizations(user_id, current_user.id))


@members_bp.route("/users/<int:user_id>/workspaces", methods=["GET"])
@login_required
def user_workspaces(user_id: int):
    return _listing(service.get_user_workspaces(user_id, current_user.id))


@members_bp.route("/users/<int:user_id>/projects", methods=["GET"])
@login_required
def user_projects(user_id: int):
    return _listing(service.get_user_projects(user_id, current_user.id))
