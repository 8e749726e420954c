from whaticon.cli import main

main()
