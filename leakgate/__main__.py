from leakgate.cli import main

main()
