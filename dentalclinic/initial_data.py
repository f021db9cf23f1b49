# Initial reference data and the bootstrap admin, created on startup.
import logging

from sqlalchemy.exc import SQLAlchemyError

from .config import get_settings
from .database import SessionLocal
from . import crud, models

logger = logging.getLogger(__name__)

DEFAULT_PROCEDURES = [
    ("Avaliação", "Consulta de avaliação inicial", 30),
    ("Limpeza", "Profilaxia e remoção de tártaro", 30),
    ("Restauração", "Restauração em resina", 60),
    ("Canal", "Tratamento endodôntico", 90),
    ("Extração", "Extração dentária simples", 60),
    ("Clareamento", "Clareamento dental em consultório", 60),
]


def create_initial_data():
    """Creates the procedure catalogue if it is missing."""
    db = SessionLocal()
    try:
        for name, description, duration in DEFAULT_PROCEDURES:
            if not crud.get_procedure_by_name(db, name):
                db.add(models.Procedure(name=name, description=description, estimated_duration=duration))
                logger.info(f"Initial procedure '{name}' created.")
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"CRITICAL: Error during initial data creation: {e}")
    finally:
        db.close()


def create_or_update_admin():
    """Ensure the admin configured through ADMIN_EMAIL / ADMIN_PASSWORD exists and can log in."""
    from .security import get_password_hash, verify_password

    settings = get_settings()
    if not settings.admin_email or not settings.admin_password:
        logger.info("ADMIN_EMAIL/ADMIN_PASSWORD not set; skipping admin bootstrap.")
        return

    db = SessionLocal()
    try:
        admin = crud.get_profile_by_email(db, settings.admin_email)
        if admin:
            admin.role = models.UserRole.admin
            admin.is_active = True
            if not verify_password(settings.admin_password, admin.password_hash):
                admin.password_hash = get_password_hash(settings.admin_password)
            logger.info(f"Admin profile '{admin.email}' updated.")
        else:
            admin = crud.create_profile(
                db,
                email=settings.admin_email,
                password_hash=get_password_hash(settings.admin_password),
                role=models.UserRole.admin,
                first_name="Admin",
            )
            logger.info(f"Admin profile '{admin.email}' created.")
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"CRITICAL: Error while creating admin profile: {e}")
    finally:
        db.close()
