import logging
from contextlib import asynccontextmanager
from typing import List, Optional

import uvicorn
from fastapi import Depends, FastAPI, Path, Query, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette import status

from abplane.core.auth import require_auth_token
from abplane.core.db import engine, get_db
from abplane.core.errors import AppError, NotFoundError, ValidationError
from abplane.core.logging import configure_logging
from abplane.core.settings import config_settings
from abplane.models.orm.assignment import AssignmentORM  # noqa: F401
from abplane.models.orm.base import Base
from abplane.models.orm.experiment import ExperimentStatus
from abplane.models.schemas.assignment import AssignmentModel, AssignRequest
from abplane.models.schemas.experiment import (
    ExperimentCreateModel,
    ExperimentListResponseModel,
    ExperimentResponseModel,
    ExperimentUpdateModel,
)
from abplane.models.schemas.variant import (
    RebalanceRequest,
    RebalanceResponse,
    VariantResponseModel,
    VariantSetRequest,
)
from abplane.services.apportioner import rebalance_even, rebalance_locked
from abplane.services.assignment_service import AssignmentService
from abplane.services.experiment_service import ExperimentService
from abplane.services.variant_service import VariantService

configure_logging(config_settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info("abplane started against %s", engine.url.render_as_string(hide_password=True))
    yield


app = FastAPI(
    lifespan=lifespan,
    title="abplane",
    description="A/B testing control plane: weighted variants and sticky assignments.",
    version="0.1.0",
)

protected = [Depends(require_auth_token)]


@app.exception_handler(AppError)
def handle_app_error(request: Request, err: AppError):
    if err.http_status >= 500:
        logger.error("%s on %s %s: %s", err.code, request.method, request.url.path, err.message)
    else:
        logger.info("%s on %s %s: %s", err.code, request.method, request.url.path, err.message)
    return JSONResponse(
        status_code=err.http_status,
        content={"error": {"code": err.code, "message": err.message}},
    )


@app.get("/health", status_code=status.HTTP_200_OK, summary="Liveness probe")
def health():
    return {"status": "ok"}


# --- Experiments ---


@app.post(
    "/experiments",
    response_model=ExperimentResponseModel,
    status_code=status.HTTP_201_CREATED,
    dependencies=protected,
)
def post_experiments(
    experiment_data: ExperimentCreateModel,
    db: Session = Depends(get_db),
):
    return ExperimentService(db).create_experiment(experiment_data)


@app.get(
    "/experiments",
    response_model=ExperimentListResponseModel,
    dependencies=protected,
    summary="List experiments, newest first",
)
def list_experiments(
    search: Optional[str] = Query(None, max_length=64),
    experiment_status: Optional[List[ExperimentStatus]] = Query(None, alias="status"),
    cursor: Optional[str] = Query(None),
    limit: int = Query(50),
    db: Session = Depends(get_db),
):
    return ExperimentService(db).list_experiments(
        search=search, statuses=experiment_status, cursor=cursor, limit=limit
    )


@app.get(
    "/experiments/{experiment_id}",
    response_model=ExperimentResponseModel,
    dependencies=protected,
)
def get_experiment(experiment_id: str, db: Session = Depends(get_db)):
    return ExperimentService(db).get_experiment(experiment_id)


@app.put(
    "/experiments/{experiment_id}",
    response_model=ExperimentResponseModel,
    dependencies=protected,
)
def put_experiment(
    experiment_id: str,
    experiment_data: ExperimentUpdateModel,
    db: Session = Depends(get_db),
):
    return ExperimentService(db).update_experiment(experiment_id, experiment_data)


@app.delete(
    "/experiments/{experiment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=protected,
)
def delete_experiment(experiment_id: str, db: Session = Depends(get_db)):
    ExperimentService(db).delete_experiment(experiment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Variants ---


@app.get(
    "/experiments/{experiment_id}/variants",
    response_model=List[VariantResponseModel],
    dependencies=protected,
)
def get_variants(experiment_id: str, db: Session = Depends(get_db)):
    return VariantService(db).list_variants(experiment_id)


@app.put(
    "/experiments/{experiment_id}/variants",
    response_model=List[VariantResponseModel],
    dependencies=protected,
    summary="Replace the experiment's variant set",
)
def put_variants(
    experiment_id: str,
    variant_set: VariantSetRequest,
    db: Session = Depends(get_db),
):
    """
    Variants carrying an id are updated, those without are created, and any
    stored variant missing from the list is deleted, all in one transaction.
    """
    return VariantService(db).save_variants(experiment_id, variant_set.variants)


@app.post(
    "/variants/rebalance",
    response_model=RebalanceResponse,
    dependencies=protected,
    summary="Redistribute editor weights so they sum to 100",
)
def post_rebalance(payload: RebalanceRequest):
    if payload.locked_index is None:
        weights = rebalance_even(payload.weights)
    else:
        if not 0 <= payload.locked_index < len(payload.weights):
            raise ValidationError(f"No weight at index {payload.locked_index}.")
        weights = rebalance_locked(payload.weights, payload.locked_index, payload.new_value)
    return RebalanceResponse(weights=weights, total=sum(weights))


# --- Assignments ---


@app.post(
    "/experiments/{experiment_id}/assignments",
    response_model=AssignmentModel,
    dependencies=protected,
    summary="Assign a user (sticky)",
)
def post_assignment(
    experiment_id: str,
    payload: AssignRequest,
    response: Response,
    db: Session = Depends(get_db),
):
    """
    Returns the user's variant. The first call for a user creates a
    persistent assignment based on the variant weights (201); later calls
    return the same assignment (200).
    """
    assignment = AssignmentService(db).assign(experiment_id, payload.user_id)
    response.status_code = (
        status.HTTP_201_CREATED if assignment.is_new else status.HTTP_200_OK
    )
    return assignment


@app.get(
    "/experiments/{experiment_id}/assignments/{user_id}",
    response_model=AssignmentModel,
    dependencies=protected,
    summary="Look up a user assignment without creating one",
)
def get_user_variant_assignment(
    experiment_id: str = Path(..., description="The ID of the experiment."),
    user_id: str = Path(..., description="The ID of the user."),
    db: Session = Depends(get_db),
):
    assignment = AssignmentService(db).get(experiment_id, user_id)
    if assignment is None:
        raise NotFoundError(f"User {user_id.strip()} is not assigned in {experiment_id}.")
    return assignment


@app.get(
    "/experiments/{experiment_id}/assignments",
    response_model=List[AssignmentModel],
    dependencies=protected,
    summary="List assignments, most recent first",
)
def list_assignments(experiment_id: str, db: Session = Depends(get_db)):
    return AssignmentService(db).list(experiment_id)


if __name__ == "__main__":
    uvicorn.run("abplane.main:app", host="0.0.0.0", port=8000, reload=True)
