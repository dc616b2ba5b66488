import logging
from rq import get_current_job
from quizvault.core.database import SessionLocal, init_db
from quizvault.services.seed import seed_database

logger = logging.getLogger(__name__)

def seed_job(seed_path=None):
    job = get_current_job()
    job.meta.update({"state": "running", "files_done": 0, "items_processed": 0, "items_created": 0}); job.save_meta()

    def progress(file_name, processed, created):
        job.meta["files_done"] = int(job.meta.get("files_done", 0)) + 1
        job.meta.update({"last_file": file_name, "items_processed": processed, "items_created": created}); job.save_meta()

    init_db()
    db = SessionLocal()
    try:
        result = seed_database(db, seed_path, progress)
        job.meta.update({"state": "done"}); job.save_meta()
        return result
    except Exception:
        logger.exception("Seed job %s failed", job.id)
        db.rollback()
        job.meta.update({"state": "failed"}); job.save_meta()
        raise
    finally:
        db.close()
