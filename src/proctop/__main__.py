from proctop.cli import main

main()
