"""
FastAPI control surface standing in for the automation host.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware

from .. import DeviceConfig
from ..host import LocalHost
from ..plugin import ConnectDvrPlugin
from . import schemas

LOG = logging.getLogger(__name__)


def create_app(
    *,
    plugin: Optional[ConnectDvrPlugin] = None,
    host: Optional[LocalHost] = None,
    config: Optional[DeviceConfig] = None,
    lifespan: Optional[Callable[..., object]] = None,
) -> FastAPI:
    local_host = host or LocalHost()
    dvr = plugin or ConnectDvrPlugin(local_host)
    initial_config = config or DeviceConfig()

    @asynccontextmanager
    async def default_lifespan(_app: FastAPI) -> AsyncIterator[None]:
        await dvr.start(initial_config)
        try:
            yield
        finally:
            await dvr.stop()

    app = FastAPI(title="Connect DVR Control API", lifespan=lifespan or default_lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.plugin = dvr
    app.state.host = local_host

    @app.get("/healthz")
    async def healthz() -> dict:
        return {"status": "ok", "device": dvr.config.host}

    @app.get("/status", response_model=schemas.StatusModel)
    async def get_status() -> schemas.StatusModel:
        return schemas.StatusModel(
            status=local_host.status.value,
            message=local_host.status_message,
            phase=dvr.session.phase.value,
            host=dvr.config.host,
        )

    @app.get("/state")
    async def get_state() -> dict:
        return dvr.state.snapshot()

    @app.get("/variables", response_model=schemas.VariableList)
    async def get_variables() -> schemas.VariableList:
        return schemas.VariableList(
            variables=[
                schemas.VariableModel(
                    variableId=definition.variable_id,
                    name=definition.name,
                    value=local_host.variables.get(definition.variable_id, ""),
                )
                for definition in local_host.variable_definitions
            ]
        )

    @app.get("/actions", response_model=schemas.DefinitionList)
    async def list_actions() -> schemas.DefinitionList:
        return schemas.DefinitionList(
            items={key: action.describe() for key, action in local_host.actions.items()}
        )

    @app.post("/actions/{action_id}", response_model=schemas.ActionResult)
    async def run_action(action_id: str, payload: schemas.OptionsRequest) -> schemas.ActionResult:
        try:
            result = await local_host.run_action(action_id, payload.options)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Unknown action '{action_id}'") from None
        return schemas.ActionResult(action=action_id, accepted=bool(result))

    @app.get("/feedbacks", response_model=schemas.DefinitionList)
    async def list_feedbacks() -> schemas.DefinitionList:
        return schemas.DefinitionList(
            items={key: feedback.describe() for key, feedback in local_host.feedbacks.items()}
        )

    @app.post("/feedbacks/{feedback_id}", response_model=schemas.FeedbackResult)
    async def evaluate_feedback(
        feedback_id: str, payload: schemas.OptionsRequest
    ) -> schemas.FeedbackResult:
        try:
            value = local_host.evaluate_feedback(feedback_id, payload.options)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"Unknown feedback '{feedback_id}'") from None
        return schemas.FeedbackResult(feedback=feedback_id, value=value)

    @app.get("/preview.png")
    async def get_preview() -> Response:
        image = dvr.state.preview_image
        if not image:
            raise HTTPException(status_code=404, detail="No preview image available")
        return Response(content=image, media_type="image/png")

    @app.put("/config", response_model=schemas.StatusModel)
    async def update_config(payload: schemas.DeviceConfigModel) -> schemas.StatusModel:
        await dvr.update_config(payload.to_config(base=dvr.config))
        return await get_status()

    return app
