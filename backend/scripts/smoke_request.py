"""Run a quick smoke request against the app through FastAPI's TestClient."""

import sys
import os

# Ensure backend folder is on sys.path so the `workshop` package can be imported
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fastapi.testclient import TestClient
from workshop.main import app


def run_testclient():
    client = TestClient(app)
    for path in ('/health', '/api/configs/phase-1'):
        resp = client.get(path)
        print(path, 'STATUS:', resp.status_code)
        print('JSON:', resp.json())


if __name__ == '__main__':
    run_testclient()
