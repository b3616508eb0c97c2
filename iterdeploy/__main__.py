from .deploy import main

main()
