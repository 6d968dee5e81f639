"""Create the label bucket and its retention policy"""
import logging

from app.exceptions import StorageError
from app.utils.storage import StorageManager

# Configure logging
logging.basicConfig(level=logging.INFO)

LABEL_RETENTION_DAYS = 365

def main():
    print("Preparing object storage for label uploads...")
    storage = StorageManager()

    if not storage.enabled:
        print("Error: Object storage is not configured.")
        return

    try:
        created = storage.ensure_bucket()
    except StorageError as e:
        print(f"FAILED: {e.message}")
        return
    print(f"Bucket '{storage.bucket}' {'created' if created else 'already exists'}.")

    if storage.set_lifecycle_policy(days=LABEL_RETENTION_DAYS):
        print(f"SUCCESS: Label files expire after {LABEL_RETENTION_DAYS} days in bucket '{storage.bucket}'.")
    else:
        print("FAILED: Could not set lifecycle policy.")

if __name__ == "__main__":
    main()
