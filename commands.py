# Quick reference commands (run from repo root). These are comments only; copy/paste as needed.

# Install the package with test dependencies (includes httpx for TestClient)
# python -m pip install -e ".[test]"

# Run the full test suite
# python -m pytest

# Run focused test files
# python -m pytest tests/test_progress_events.py tests/test_progress_state.py
# python -m pytest tests/test_hub.py tests/test_progress_routes.py
# python -m pytest tests/test_channel.py tests/test_dialog.py
# python -m pytest tests/test_worker.py tests/test_main.py

# Start the API + progress socket locally (with env vars loaded)
# python -m dotenv run -- python -m uvicorn app.api:app --port 5001 --reload
# or: python main.py serve --port 5001

# Watch a job's progress in the terminal (token = signed JWT carrying userId)
# PROGRESS_TOKEN=... python main.py watch <job-id>
# python main.py watch <job-id> --url ws://localhost:5001/ws --timeout 300

# Simulate a scraping run that reports progress to the API
# TEST_JOB_ID=<job-id> TEST_USER_ID=<user-id> python -m dotenv run -- python -m worker.main

# List connected sockets
# curl -H "X-Progress-Key: $PROGRESS_INGEST_KEY" http://localhost:5001/internal/clients
