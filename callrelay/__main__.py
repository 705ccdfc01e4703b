from callrelay.main import main

main()
