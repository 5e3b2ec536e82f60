from packfetch.cli import main

main(prog_name="packfetch")
