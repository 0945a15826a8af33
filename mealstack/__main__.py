"""Run the API server: python -m mealstack"""

import os

import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "mealstack.app:app",
        host=os.getenv("MEALSTACK_HOST", "127.0.0.1"),
        port=int(os.getenv("MEALSTACK_PORT", "8000")),
    )
