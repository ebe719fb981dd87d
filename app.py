from dotenv import load_dotenv
import uvicorn
from configuration import ComposeSettings
from utils import logger


def main():
    load_dotenv()
    settings = ComposeSettings.from_env()
    logger.info(
        "Starting compose harness",
        host=settings.host,
        port=settings.port,
        compose_binary=settings.compose_binary,
    )
    uvicorn.run("server:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
