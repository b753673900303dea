from .cascade import Level, Mode, propagate_role, remove_below
from .service import (
    create_organization_member,
    create_project_member,
    create_workspace_member,
    find_by_user_and_organization,
    find_by_user_and_project,
    find_by_user_and_workspace,
    get_user_organizations,
    get_user_projects,
    get_user_workspaces,
    invite_organization_member_by_email,
    invite_project_member_by_email,
    invite_workspace_member_by_email,
    list_organization_members,
    list_project_members,
    list_workspace_members,
    remove_organization_member,
    remove_project_member,
    remove_workspace_member,
    update_organization_member,
    update_project_member,
    update_workspace_member,
)
