from relflow.cli.app import main

main()
