from ecoplane.main import main

main()
