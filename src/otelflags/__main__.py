from otelflags.cli import main

main()
