from jobwarden.main import main

main()
