from .service import create_organization, create_project, create_workspace, slugify
