"""Run the backup API with uvicorn: python -m backup_pipeline."""

import uvicorn


def main() -> None:
    uvicorn.run(
        "backup_pipeline.api.main:app",
        host="0.0.0.0",
        port=8000,
    )


if __name__ == "__main__":
    main()
