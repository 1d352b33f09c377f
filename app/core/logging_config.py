import logging
import json
import os

from app.core.config import config
from app.models import CreditTransaction, FraudCheck

# logging credits (credit_transactions)
TRANSACTION_FIELDS = {c.name for c in CreditTransaction.__table__.columns}
# fraud checks + admin review
FRAUD_FIELDS = {c.name for c in FraudCheck.__table__.columns}


class ModelFormatter(logging.Formatter):
    def __init__(self, fmt=None, fields=None):
        super().__init__(fmt)
        self.fields = fields or set()

    def format(self, record):
        base = super().format(record)
        extras = {k: v for k, v in record.__dict__.items() if k in self.fields}
        if extras:
            base += " " + json.dumps(extras, default=str, ensure_ascii=False)
        return base


def _add_file_handler(logger_name: str, filename: str, formatter: logging.Formatter):
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.INFO)
    # повторний виклик setup_logging не дублює handlers
    if not logger.handlers:
        handler = logging.FileHandler(os.path.join(config.LOG_DIR, filename))
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


# setup
def setup_logging():
    os.makedirs(config.LOG_DIR, exist_ok=True)

    formatter_tx = ModelFormatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        fields=TRANSACTION_FIELDS
    )

    formatter_fraud = ModelFormatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        fields=FRAUD_FIELDS
    )

    # credit ledger
    _add_file_handler("[LEDGER]", "credit_ledger.log", formatter_tx)

    # fraud scoring
    _add_file_handler("[FRAUD]", "referral_fraud.log", formatter_fraud)

    # ADMIN
    _add_file_handler("[ADMIN]", "admin.log", formatter_fraud)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
