from model_ingest.config.settings import Settings
from model_ingest.database.connection import close_pool, init_pool
from model_ingest.logging.logger import Log
from model_ingest.service import build_service
from model_ingest.worker.worker import Worker


def main() -> None:
    """Entry point: initialize pool -> build service -> run the owner loop."""
    settings = Settings()
    Log.configure(settings.log_level)
    init_pool(settings)

    try:
        service = build_service(settings)
        worker = Worker(service, settings)
        try:
            worker.run()
        finally:
            service.shutdown()
    finally:
        close_pool()


if __name__ == "__main__":
    main()
