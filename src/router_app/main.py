import os
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, HTTPException, Depends
from fastapi.security import APIKeyHeader
from dotenv import load_dotenv
import litellm
import logging
from pathlib import Path
import sys
from typing import Optional

# Add the 'src' directory to the Python path to allow importing 'key_router'
sys.path.append(str(Path(__file__).resolve().parent.parent))

from key_router import KeyRouter, NoAvailableKeysError, load_router_config
from key_router.executor import PlanExecutor
from key_router.failure_logger import setup_failure_logger
from key_router.types import CallAssignment

from router_app.security_config import (
    allow_insecure_defaults,
    get_proxy_api_key,
    validate_secret_settings,
)

# Configure logging
logging.basicConfig(level=logging.INFO)

# Load environment variables from .env file
load_dotenv()

BUSY_MESSAGE = "The service is busy right now. Please try again in a moment."


# --- Lifespan Management ---
def create_app(router: Optional[KeyRouter] = None) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        router: Pre-built router (tests); built from the environment when None
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage the KeyRouter's lifecycle with the app's lifespan."""
        validate_secret_settings()
        setup_failure_logger(os.getenv("FAILURE_LOG_DIR", "logs"))

        key_router = router or KeyRouter(load_router_config())
        app.state.key_router = key_router
        app.state.executor = PlanExecutor(key_router)
        await key_router.start()
        logging.info("KeyRouter initialized.")
        yield
        await key_router.stop()
        logging.info("KeyRouter closed.")

    app = FastAPI(lifespan=lifespan)
    _register_routes(app)
    return app


api_key_header = APIKeyHeader(name="Authorization", auto_error=False)


def get_key_router(request: Request) -> KeyRouter:
    """Dependency to get the router instance from the app state."""
    return request.app.state.key_router


def get_executor(request: Request) -> PlanExecutor:
    return request.app.state.executor


async def verify_api_key(auth: str = Depends(api_key_header)):
    """Dependency to verify the proxy API key."""
    expected = get_proxy_api_key()
    if not expected and allow_insecure_defaults():
        return auth
    if not expected or not auth or auth != f"Bearer {expected}":
        raise HTTPException(status_code=401, detail="Invalid or missing API Key")
    return auth


def _register_routes(app: FastAPI) -> None:
    @app.get("/")
    def read_root():
        return {"Status": "Key router is running"}

    @app.get("/v1/keys/status")
    async def keys_status(
        router: KeyRouter = Depends(get_key_router),
        _=Depends(verify_api_key),
    ):
        """
        Returns pool size, fallback configuration, and the capacity of
        every pooled credential.
        """
        return {
            "pool_size": len(router.get_credentials()),
            "has_credentials": router.has_credentials(),
            "registry_synced": router.registry_synced,
            "fallback": router.describe_fallback(),
            "keys": router.get_all_capacity_info(),
        }

    @app.get("/v1/keys/{key_id}/capacity")
    async def key_capacity(
        key_id: str,
        model: str,
        router: KeyRouter = Depends(get_key_router),
        _=Depends(verify_api_key),
    ):
        info = router.get_capacity_info(key_id, model)
        if info is None:
            raise HTTPException(
                status_code=404, detail=f"No capacity data for key '{key_id}' and model '{model}'"
            )
        return info.to_dict()

    @app.post("/v1/chat/completions")
    async def chat_completions(
        request: Request,
        executor: PlanExecutor = Depends(get_executor),
        _=Depends(verify_api_key),
    ):
        """
        OpenAI-compatible endpoint powered by the KeyRouter.
        Only non-streaming responses are supported.
        """
        data = await request.json()
        if data.get("stream", False):
            raise HTTPException(status_code=400, detail="Streaming is not supported.")
        if not data.get("messages"):
            raise HTTPException(status_code=400, detail="'messages' is required.")

        model = data.pop("model", None)
        allowed_models = data.pop("allowed_models", None)
        data.pop("stream", None)
        # Credentials always come from the assignment
        data.pop("api_key", None)
        preferred = [model] if model else None

        async def call(assignment: CallAssignment):
            return await litellm.acompletion(
                **assignment.handle.completion_kwargs(assignment.model), **data
            )

        try:
            result = await executor.execute(call, preferred, allowed_models)
        except NoAvailableKeysError as e:
            logging.error(f"Request failed after all retries: {e}")
            raise HTTPException(status_code=503, detail=BUSY_MESSAGE)

        return result.response


app = create_app()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Key Router Server")
    parser.add_argument("--host", type=str, default="0.0.0.0", help="Host to bind the server to.")
    parser.add_argument("--port", type=int, default=8000, help="Port to run the server on.")
    args = parser.parse_args()

    import uvicorn

    uvicorn.run(app, host=args.host, port=args.port)
