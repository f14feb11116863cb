# sweep.py
"""Expire lapsed offers and close lapsed broadcasts.

Run from cron / a scheduler every minute:

    python sweep.py [--batch-size N]
"""
import argparse
import logging

from matchdesk import create_app
from matchdesk.services.assignment_service import sweep_expired_offers


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--batch-size", type=int, default=None,
                        help="max tasks per run (default: OFFER_SWEEP_BATCH_SIZE)")
    args = parser.parse_args(argv)

    app = create_app()
    with app.app_context():
        processed = sweep_expired_offers(batch_size=args.batch_size)
        logging.getLogger("matchdesk").info("sweep done: %d task(s) transitioned", processed)
    print(processed)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
