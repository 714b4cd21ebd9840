#!/usr/bin/env python3
"""
Trade Document Folder Watcher

Watches a folder for new PDF trade documents (shipping bills, invoices,
transport documents, FIRA/FIRC advices) and uploads them for one customer.
Processing runs in the background on the server; this script only confirms
the documents were accepted.

Usage:
    python document_watcher.py --customer-id 42 --watch-folder ./incoming
"""

import argparse
import json
import time
from datetime import datetime
from pathlib import Path

import requests
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

API_BASE_URL = "http://localhost:8000"


class DocumentUploadHandler(FileSystemEventHandler):
    """Uploads new PDFs and files them under submitted/ or failed/"""

    def __init__(
        self,
        watch_folder,
        customer_id: int,
        api_url: str = API_BASE_URL,
        submitted_folder=None,
        failed_folder=None,
        session=None,
        settle_seconds: float = 1.0,
    ):
        self.watch_folder = Path(watch_folder)
        self.customer_id = customer_id
        self.api_url = api_url.rstrip("/")
        self.submitted_folder = Path(submitted_folder or self.watch_folder / "submitted")
        self.failed_folder = Path(failed_folder or self.watch_folder / "failed")
        self.session = session or requests.Session()
        self.settle_seconds = settle_seconds
        self.seen_files = set()

        self.submitted_folder.mkdir(parents=True, exist_ok=True)
        self.failed_folder.mkdir(parents=True, exist_ok=True)

    @property
    def log_file(self) -> Path:
        return self.watch_folder / "processing_log.json"

    def on_created(self, event):
        if event.is_directory:
            return

        file_path = Path(event.src_path)
        if file_path.suffix.lower() != ".pdf" or file_path in self.seen_files:
            return

        # Let the writer finish before reading
        time.sleep(self.settle_seconds)
        if not file_path.exists():
            return

        self.seen_files.add(file_path)
        self.upload(file_path)

    def upload(self, file_path: Path) -> bool:
        """Upload one PDF; returns True when the server accepted it."""
        print(f"\n📄 New document: {file_path.name} ({file_path.stat().st_size:,} bytes)")

        try:
            with open(file_path, "rb") as f:
                response = self.session.post(
                    f"{self.api_url}/customers/{self.customer_id}/documents",
                    files={"files": (file_path.name, f, "application/pdf")},
                    timeout=60,
                )
        except requests.exceptions.RequestException as e:
            print(f"❌ Upload failed: {e}")
            self._file_away(file_path, self.failed_folder, {"error": str(e)})
            return False

        if response.status_code != 201:
            print(f"❌ API Error: {response.status_code} {response.text[:200]}")
            self._file_away(file_path, self.failed_folder, {"error": f"HTTP {response.status_code}"})
            return False

        documents = response.json()
        for doc in documents:
            print(f"✅ Accepted as {doc['id']} (status: {doc['status']})")
        self._file_away(file_path, self.submitted_folder, {"documents": [d["id"] for d in documents]})
        return True

    def _file_away(self, file_path: Path, destination: Path, details: dict) -> Path:
        dest_path = destination / file_path.name
        if dest_path.exists():
            dest_path = destination / f"{datetime.now().strftime('%Y%m%d%H%M%S')}_{file_path.name}"
        file_path.rename(dest_path)
        self.log_processing(file_path.name, dest_path, details)
        return dest_path

    def log_processing(self, filename: str, dest_path: Path, details: dict):
        """Append one entry to the JSON processing log"""
        if self.log_file.exists():
            with open(self.log_file, "r") as f:
                log_data = json.load(f)
        else:
            log_data = []

        log_data.append({
            "timestamp": datetime.now().isoformat(),
            "filename": filename,
            "customer_id": self.customer_id,
            "destination": str(dest_path),
            **details,
        })

        with open(self.log_file, "w") as f:
            json.dump(log_data, f, indent=2)


def main():
    parser = argparse.ArgumentParser(
        description="Watch a folder and upload trade documents for processing"
    )
    parser.add_argument("--customer-id", type=int, required=True, help="Customer the documents belong to")
    parser.add_argument(
        "--watch-folder",
        default="./incoming",
        help="Folder to watch for new PDFs (default: ./incoming)",
    )
    parser.add_argument(
        "--api-url",
        default=API_BASE_URL,
        help=f"API base URL (default: {API_BASE_URL})",
    )
    args = parser.parse_args()

    watch_folder = Path(args.watch_folder)
    watch_folder.mkdir(parents=True, exist_ok=True)

    handler = DocumentUploadHandler(watch_folder, args.customer_id, api_url=args.api_url)
    observer = Observer()
    observer.schedule(handler, str(watch_folder), recursive=False)
    observer.start()

    print("=" * 70)
    print("🔍 TRADE DOCUMENT WATCHER")
    print("=" * 70)
    print(f"Watching: {watch_folder.absolute()}")
    print(f"Customer: {args.customer_id}")
    print(f"API: {args.api_url}")
    print("Press Ctrl+C to stop")
    print("=" * 70)

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nStopping watcher...")
        observer.stop()

    observer.join()


if __name__ == "__main__":
    main()
