#!/usr/bin/env python3
"""
Powerslides relay server launcher
"""
import uvicorn
from powerslides.config import settings

if __name__ == "__main__":
    # Production mode
    uvicorn.run(
        "powerslides.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=False,  # no reload in production
        log_level="info"
    )
