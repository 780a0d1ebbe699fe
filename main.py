from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from config import Config
from stratifier_endpoint import add_stratifier_routes_to_app

logging.basicConfig(level=getattr(logging, Config.LOG_LEVEL, logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(title=f"{Config.TOOL_NAME} API", version=Config.ENGINE_VERSION)
app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
add_stratifier_routes_to_app(app)


@app.get("/")
async def root():
    return {
        "service": Config.TOOL_NAME,
        "version": Config.ENGINE_VERSION,
        "status": "active",
        "endpoints": {
            "evaluate": "/stratifier/evaluate",
            "summary": "/stratifier/summary",
            "baseline": "/stratifier/baseline",
            "criteria": "/stratifier/criteria"
        }
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": Config.TOOL_NAME,
        "version": Config.ENGINE_VERSION
    }


if __name__ == "__main__":
    import uvicorn
    print("\n" + "=" * 60)
    print(f"🏥 {Config.TOOL_NAME}")
    print("=" * 60)
    print(f"🌐 Server: http://localhost:{Config.PORT}")
    print(f"📚 Docs  : http://localhost:{Config.PORT}/docs")
    print("=" * 60 + "\n")
    uvicorn.run(app, host=Config.HOST, port=Config.PORT)
