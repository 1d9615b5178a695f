from .cli import main

main(prog_name="csv2ndjson")
