from sessionsplit.main import app

if __name__ == "__main__":
    import uvicorn

    from sessionsplit.core.config import settings

    uvicorn.run("sessionsplit.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
