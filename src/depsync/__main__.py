from depsync.cli import main

if __name__ == "__main__":  # pragma: no cover - module entrypoint
    raise SystemExit(main())
