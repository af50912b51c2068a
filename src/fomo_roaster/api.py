import logging
from functools import lru_cache

from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.requests import Request
from fastapi.responses import JSONResponse, PlainTextResponse

from fomo_roaster import config, core, github, llm, models
from fomo_roaster.store import MemoryStore

logger = logging.getLogger(__name__)

MESSAGES = {
    "invalid_input": "Please enter a valid GitHub username.",
    "no_repositories": "No public repositories found.",
    "quota_exceeded": "We're out of roasting quota for now. Please try again later.",
    "upstream_failure": "Failed to generate the roast. Please try again later.",
}


app = FastAPI(title="Tech FOMO Roaster")


@lru_cache
def get_analyzer() -> core.Analyzer:
    return core.Analyzer.from_config(config.get_config(), MemoryStore())


def _error(status_code: int, code: str) -> JSONResponse:
    body = models.ErrorResponse(code=code, message=MESSAGES[code])
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(github.GitHubError)
async def github_error_handler(request: Request, exc: github.GitHubError) -> JSONResponse:
    if isinstance(exc, github.InvalidInput):
        logger.info(f"Rejected input: {exc}")
        return _error(400, exc.code)
    logger.error(f"GitHub error: {exc}")
    return _error(500, exc.code)


@app.exception_handler(llm.LLMError)
async def llm_error_handler(request: Request, exc: llm.LLMError) -> JSONResponse:
    logger.error(f"LLM error: {exc}")
    return _error(500, exc.code)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(loc) for loc in e['loc'])}: {e['msg']}" for e in exc.errors()
    )
    logger.info(f"Invalid request: {details}")
    return _error(400, "invalid_input")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error")
    return _error(500, "upstream_failure")


@app.get("/")
async def root():
    return {
        "service": "Tech FOMO Roaster",
        "usage": "POST /roast or /analyze with {\"subjectId\": \"<github username>\"}",
        "docs": "/docs",
    }


@app.post("/roast", response_class=PlainTextResponse)
async def roast(
    request: models.RoastRequest,
    analyzer: core.Analyzer = Depends(get_analyzer),
):
    result = await analyzer.roast(request.subject_id)
    if isinstance(result, models.StructuredResult):
        return JSONResponse(content=result.model_dump(by_alias=True))
    return PlainTextResponse(result)


@app.post(
    "/analyze",
    response_model=models.StructuredResult,
    responses={400: {"model": models.ErrorResponse}, 500: {"model": models.ErrorResponse}},
)
async def analyze(
    request: models.RoastRequest,
    analyzer: core.Analyzer = Depends(get_analyzer),
):
    result = await analyzer.analyze_frameworks(request.subject_id)
    if isinstance(result, str):
        return PlainTextResponse(result)
    return result
