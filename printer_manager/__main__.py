from printer_manager.cli import main

main(prog_name="printer-manager")
