from streamhub.app.entrypoint import main

if __name__ == "__main__":  # pragma: no cover - manual entrypoint
    main()
