from ledger_bot.config import get_settings
from ledger_bot.db.repository import EntryRepository, SessionRepository, open_db

settings = get_settings()

ledger = settings.ledger_config()
db = open_db(settings.db_path)
entries = EntryRepository(db)
sessions = SessionRepository(db)
