from fastapi import (
    FastAPI,
    HTTPException,
    Depends,
    Header,
    Request,
    Response,
)
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from compose import DockerCompose
from configuration import ComposeFiles, ComposeSettings, DockerMachine
from models import ExecRequest
from utils import (
    logger,
    REQUEST_COUNT,
    REQUEST_LATENCY,
    get_metrics,
    ComposeException,
)
from datetime import datetime
from functools import lru_cache
import io
import shutil
import time

from typing import Optional
from prometheus_client import CONTENT_TYPE_LATEST

app = FastAPI(
    title="Compose Harness",
    description="docker-compose topology API for test harnesses",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)


@lru_cache()
def get_settings() -> ComposeSettings:
    return ComposeSettings.from_env()


@lru_cache()
def get_compose() -> DockerCompose:
    settings = get_settings()
    return DockerCompose.create(
        ComposeFiles.from_paths(*settings.compose_files),
        DockerMachine.from_environment(),
        settings.project(),
        binary=settings.compose_binary,
        log_timeout=settings.log_timeout_seconds,
    )


# Authentication dependency
async def verify_harness_token(
    authorization: Optional[str] = Header(None),
    settings: ComposeSettings = Depends(get_settings),
):
    """Verify that the request carries the harness bearer token"""
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")

    if authorization != f"Bearer {settings.harness_token}":
        raise HTTPException(status_code=403, detail="Invalid harness token")

    return True


# Request/Response middleware for logging and metrics
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    response = await call_next(request)

    response_time = time.time() - start_time
    logger.info(
        "HTTP request",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code,
        response_time=response_time,
    )

    REQUEST_COUNT.labels(
        method=request.method, endpoint=request.url.path, status=response.status_code
    ).inc()
    REQUEST_LATENCY.observe(response_time)

    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error("Validation error", errors=exc.errors())
    return JSONResponse(
        status_code=422,
        content={"detail": "Validation error", "errors": exc.errors()},
    )


@app.exception_handler(ComposeException)
async def compose_exception_handler(request: Request, exc: ComposeException):
    logger.error(
        "Compose exception",
        error_code=exc.error_code,
        message=exc.message,
        status_code=exc.status_code,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error_code": exc.error_code},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error("Unexpected error", error=str(exc), exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "error_code": "INTERNAL_ERROR"},
    )


@app.post("/build")
def build(
    _: bool = Depends(verify_harness_token),
    compose: DockerCompose = Depends(get_compose),
):
    logger.info("Building images")
    compose.build()
    return {"status": "built"}


@app.post("/up")
def up(
    _: bool = Depends(verify_harness_token),
    compose: DockerCompose = Depends(get_compose),
):
    logger.info("Starting containers")
    compose.up()
    return {"status": "up"}


@app.post("/down")
def down(
    _: bool = Depends(verify_harness_token),
    compose: DockerCompose = Depends(get_compose),
):
    logger.info("Taking containers down")
    compose.down()
    return {"status": "down"}


@app.post("/kill")
def kill(
    _: bool = Depends(verify_harness_token),
    compose: DockerCompose = Depends(get_compose),
):
    logger.info("Killing containers")
    compose.kill()
    return {"status": "killed"}


@app.post("/rm")
def rm(
    _: bool = Depends(verify_harness_token),
    compose: DockerCompose = Depends(get_compose),
):
    logger.info("Removing containers")
    compose.rm()
    return {"status": "removed"}


@app.get("/containers")
def list_containers(
    _: bool = Depends(verify_harness_token),
    compose: DockerCompose = Depends(get_compose),
):
    """List the services docker-compose reports as containers"""
    return {"containers": sorted(compose.ps())}


@app.get("/containers/{service}/ports")
def get_ports(
    service: str,
    _: bool = Depends(verify_harness_token),
    compose: DockerCompose = Depends(get_compose),
):
    """Get the externally reachable port mappings of a service"""
    logger.info("Getting container ports", service=service)
    ports = sorted(
        compose.ports(service).ports,
        key=lambda port: (port.internal_port, port.external_port),
    )
    return {
        "service": service,
        "ports": [port.model_dump() for port in ports],
    }


@app.post("/containers/{container}/exec")
def exec_in_container(
    container: str,
    request: ExecRequest,
    _: bool = Depends(verify_harness_token),
    compose: DockerCompose = Depends(get_compose),
):
    logger.info("Executing in container", container=container, arguments=request.arguments)
    output = compose.exec(request.options, container, request.arguments)
    return {"container": container, "output": output}


@app.get("/containers/{container}/logs")
def get_container_logs(
    container: str,
    _: bool = Depends(verify_harness_token),
    compose: DockerCompose = Depends(get_compose),
):
    """Collect the logs of a container until it stops or the log timeout passes"""
    logger.info("Getting container logs", container=container)
    output = io.StringIO()
    finished = compose.write_logs(container, output)
    return {"container": container, "logs": output.getvalue(), "finished": finished}


@app.get("/health", status_code=200)
async def health_endpoint(settings: ComposeSettings = Depends(get_settings)):
    binary = shutil.which(settings.compose_binary)
    return {
        "status": "healthy" if binary else "unhealthy",
        "timestamp": datetime.utcnow().isoformat(),
        "compose_binary": binary,
    }


@app.get("/metrics")
async def metrics_endpoint():
    """Prometheus metrics endpoint"""
    return Response(content=get_metrics(), media_type=CONTENT_TYPE_LATEST)


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "name": "Compose Harness",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics",
    }
