from dotenv import load_dotenv

load_dotenv()

from foyer.app import create_app  # noqa: E402

app = create_app()


def main() -> None:
    import os

    import uvicorn

    uvicorn.run(
        "foyer.run:app",
        host=os.getenv("STRONGROOM_HOST", "127.0.0.1"),
        port=int(os.getenv("STRONGROOM_PORT", "8000")),
    )


if __name__ == "__main__":
    main()
