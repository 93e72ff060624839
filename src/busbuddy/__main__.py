from busbuddy.server import main

main()
