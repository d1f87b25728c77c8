"""LED indicators that follow the device state, and the timer that animates them."""