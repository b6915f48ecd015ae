"""Run the PDF service: ``python -m pdf_service``."""

from pdf_service.api.main import run

if __name__ == "__main__":
    run()
