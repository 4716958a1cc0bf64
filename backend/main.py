import uvicorn
import os

if __name__ == "__main__":
    is_dev = os.getenv("APP_ENV", "development") == "development"

    uvicorn.run(
        "warehouse.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=is_dev,
        log_level="info"
    )
