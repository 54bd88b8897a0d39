import os

import uvicorn

from meetmate.main import create_app

app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        app,
        host=os.environ.get("MEETMATE_HOST", "127.0.0.1"),
        port=int(os.environ.get("MEETMATE_PORT", "6684")),
        log_config=None,
    )
