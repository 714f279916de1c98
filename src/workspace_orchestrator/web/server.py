"""FastAPI server exposing workspace creation and cleanup."""

import logging
from typing import List, Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from ..core.config import OrchestratorConfig
from ..core.errors import InvalidRequest, WorkspaceError
from ..core.models import CleanupReport, CleanupState, Project, ProjectRepo, Workspace
from ..services import Services, build_services
from .models import (
    CreateWorkspaceRequest,
    ErrorResponse,
    TaskCleanupResponse,
    UpdateProjectRepoRequest,
    UpdateProjectRequest,
)

logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def create_app(
    config: Optional[OrchestratorConfig] = None,
    services: Optional[Services] = None,
) -> FastAPI:
    """Create FastAPI application with all routes."""
    config = config or OrchestratorConfig()
    app = FastAPI(
        title="Workspace Orchestrator",
        description="Provision and clean up multi-repository task workspaces",
        version="0.1.0",
    )
    app.state.config = config
    app.state.services = services or build_services(config)

    @app.exception_handler(WorkspaceError)
    async def workspace_error_handler(request: Request, exc: WorkspaceError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    register_routes(app)
    return app


def register_routes(app: FastAPI):
    """Register all API routes.

    Handlers are plain functions: git and cleanup scripts block, so FastAPI
    runs them in its threadpool.
    """

    def services() -> Services:
        return app.state.services

    # ============== Task attempts (workspaces) ==============

    @app.post(
        "/api/task-attempts",
        response_model=Workspace,
        status_code=201,
        responses=ERROR_RESPONSES,
    )
    def create_task_attempt(body: CreateWorkspaceRequest):
        """Create a workspace with one worktree per requested repository."""
        return services().provisioner.create(
            task_id=body.task_id,
            executor_profile_id=body.executor_profile_id,
            repos=body.repos,
            branch_name=body.branch_name,
        )

    @app.get("/api/task-attempts", response_model=List[Workspace], responses=ERROR_RESPONSES)
    def list_task_attempts(task_id: str = Query(...)):
        """Workspaces of a task, most recent first."""
        services().registry.get_task(task_id)
        return services().workspaces.list_for_task(task_id)

    @app.get("/api/task-attempts/{workspace_id}", response_model=Workspace, responses=ERROR_RESPONSES)
    def get_task_attempt(workspace_id: str):
        return services().workspaces.require(workspace_id)

    @app.delete(
        "/api/task-attempts/{workspace_id}",
        response_model=CleanupReport,
        responses=ERROR_RESPONSES,
    )
    def delete_task_attempt(workspace_id: str):
        """Run cleanup scripts and remove the workspace's worktrees."""
        return services().cleanup.cleanup_workspace(workspace_id)

    # ============== Tasks ==============

    @app.delete("/api/tasks/{task_id}", response_model=TaskCleanupResponse, responses=ERROR_RESPONSES)
    def delete_task(task_id: str):
        """Clean up every workspace of a task, then delete the task."""
        reports = services().cleanup.delete_task(task_id)
        deleted = all(r.state == CleanupState.DONE and not r.cancelled for r in reports)
        return TaskCleanupResponse(task_id=task_id, deleted=deleted, reports=reports)

    # ============== Project configuration ==============

    @app.put("/api/projects/{project_id}", response_model=Project, responses=ERROR_RESPONSES)
    def update_project(project_id: str, body: UpdateProjectRequest):
        updates = body.model_dump(include=body.model_fields_set)
        if "name" in updates and not updates["name"]:
            raise InvalidRequest("Project name cannot be empty")
        return services().registry.update_project(project_id, **updates)

    @app.put(
        "/api/projects/{project_id}/repositories/{repo_id}",
        response_model=ProjectRepo,
        responses=ERROR_RESPONSES,
    )
    def update_project_repo(project_id: str, repo_id: str, body: UpdateProjectRepoRequest):
        updates = body.model_dump(include=body.model_fields_set)
        if "display_name" in updates and not updates["display_name"]:
            raise InvalidRequest("Repository display name cannot be empty")
        return services().registry.update_project_repo(project_id, repo_id, **updates)

    @app.get("/api/projects/{project_id}/repositories", response_model=List[ProjectRepo], responses=ERROR_RESPONSES)
    def list_project_repos(project_id: str):
        services().registry.get_project(project_id)
        return services().registry.find_repos_for_project(project_id)


def run_server(config: OrchestratorConfig, host: str = "127.0.0.1", port: int = 8080):
    """Run the API server with uvicorn."""
    import uvicorn

    app = create_app(config)
    logger.info(f"Starting workspace orchestrator API at http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level=config.log_level.lower())
