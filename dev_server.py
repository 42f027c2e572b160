#!/usr/bin/env python3
"""
Local development server for the linkpeek redirect API.
"""

import os
import sys
from pathlib import Path

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

# Add src to Python path
current_dir = Path(__file__).parent
src_dir = current_dir / "src"
sys.path.insert(0, str(src_dir))

# Set local development environment
os.environ.setdefault('ENVIRONMENT', 'development')
# Database configuration for development. Either set DATABASE_URL, e.g.
#   DATABASE_URL=sqlite:///./linkpeek.db python dev_server.py
# or the Supabase pair SUPABASE_PROJECT_REF / SUPABASE_DB_PASSWORD.
if not os.getenv('DATABASE_URL') and (not os.getenv('SUPABASE_PROJECT_REF') or not os.getenv('SUPABASE_DB_PASSWORD')):
    print("WARNING: database configuration missing!")
    print("Set DATABASE_URL, or SUPABASE_PROJECT_REF and SUPABASE_DB_PASSWORD")
    print("Example: DATABASE_URL=sqlite:///./linkpeek.db python dev_server.py")

if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("API_PORT", "8000"))
    print("Starting linkpeek redirect API")
    print(f"Docs: http://localhost:{port}/docs")
    print(f"Health Check: http://localhost:{port}/health")
    print("Press Ctrl+C to stop\n")

    uvicorn.run(
        "linkpeek.api.main:app",
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=port,
        reload=True,
        log_level="info"
    )
