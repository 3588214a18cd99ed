#!/usr/bin/env python3
"""
Powerslides relay development launcher
"""
import uvicorn
from powerslides.config import settings

if __name__ == "__main__":
    # Development mode
    uvicorn.run(
        "powerslides.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,  # restart on code changes
        log_level="debug"  # debug logging
    )
