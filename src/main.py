"""
FastAPI Production Application

Main entry point for the operations dashboard API.
"""

from src.config import get_settings
from src.serving.api.main import create_api_app

app = create_api_app()


if __name__ == "__main__":
    import uvicorn
    
    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
