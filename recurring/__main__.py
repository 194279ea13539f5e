from recurring.main import main

main()
